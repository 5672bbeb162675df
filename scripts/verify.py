import httpx
import asyncio
import sys
import uuid

BASE_URL = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"

async def run_verification() -> bool:
    print(f"🚀  Starting Verification against {BASE_URL}...\n")

    async with httpx.AsyncClient(base_url=BASE_URL, timeout=10.0) as client:
        # 1. Health Check
        print("1. [Health] Checking /health...")
        try:
            resp = await client.get("/health")
            if resp.status_code == 200 and resp.json() == {"status": "ok"}:
                print("   ✅  Health Check Passed")
            else:
                print(f"   ❌  Health Check Failed: {resp.text}")
                return False
        except httpx.HTTPError as e:
            print(f"   ❌  Connection Error: {e}")
            return False

        # 2. Create Link (generated code)
        print("\n2. [API] Creating Short Link...")
        long_url = "https://www.example.com/verify"
        resp = await client.post("/v1/links", json={"url": long_url})
        if resp.status_code == 201:
            code = resp.json()["short_code"]
            print(f"   ✅  Created: {resp.json()['short_url']}")
        else:
            print(f"   ❌  Create Failed: {resp.status_code} {resp.text}")
            return False

        # 3. Verify Redirect
        print("\n3. [API] Verifying Redirect...")
        resp = await client.get(f"/{code}", follow_redirects=False)
        if resp.status_code == 302 and resp.headers.get("location") == long_url:
            print(f"   ✅  Redirect Location matches: {resp.headers['location']}")
        else:
            print(f"   ❌  Redirect Failed: {resp.status_code} {resp.headers.get('location')}")
            return False

        # 4. Verify Stats
        print("\n4. [API] Verifying Stats...")
        resp = await client.get(f"/v1/links/{code}")
        if resp.status_code == 200 and resp.json()["click_count"] == 1:
            print(f"   ✅  Click Count updated: {resp.json()['click_count']}")
        else:
            print(f"   ❌  Stats Failed: {resp.status_code} {resp.text}")
            return False

        # 5. Alias conflict
        print("\n5. [API] Verifying Alias Conflict...")
        alias = f"verify{uuid.uuid4().hex[:8]}"
        payload = {"url": long_url, "custom_alias": alias, "ttl_hours": 1}
        resp1 = await client.post("/v1/links", json=payload)
        resp2 = await client.post("/v1/links", json=payload)
        if resp1.status_code == 201 and resp2.status_code == 409:
            print(f"   ✅  Second claim on '{alias}' rejected")
        else:
            print(f"   ❌  Alias Conflict Failed: {resp1.status_code} then {resp2.status_code}")
            return False

        # 6. Unknown code
        print("\n6. [API] Verifying Unknown Code...")
        resp = await client.get(f"/missing{uuid.uuid4().hex[:8]}", follow_redirects=False)
        if resp.status_code == 404:
            print("   ✅  Unknown code returns 404")
        else:
            print(f"   ❌  Unknown code returned {resp.status_code}")
            return False

        # 7. Metrics
        print("\n7. [Observability] Verifying Metrics...")
        resp = await client.get("/metrics")
        if resp.status_code == 200 and "redirect_total" in resp.text:
            print("   ✅  Metrics Endpoint Exposed")
        else:
            print(f"   ❌  Metrics Failed: {resp.status_code}")
            return False

    print("\n✨ Verification Complete!")
    return True

if __name__ == "__main__":
    sys.exit(0 if asyncio.run(run_verification()) else 1)
