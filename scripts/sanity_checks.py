import os
import sys

import requests

BASE_URL = os.getenv("PORTAL_API_BASE_URL", "http://127.0.0.1:8000/api")


def login() -> dict:
    login_name = os.getenv("PORTAL_SANITY_LOGIN", "admin")
    password = os.getenv("PORTAL_SANITY_PASSWORD", "admin123")
    try:
        res = requests.post(f"{BASE_URL}/auth/login", json={"usuario": login_name, "senha": password}, timeout=10)
    except Exception:
        print("FAIL /auth/login: request error")
        return {}
    if res.status_code != 200:
        print(f"FAIL /auth/login: HTTP {res.status_code}")
        return {}
    return {"Authorization": f"Bearer {res.json()['access_token']}"}


def check(endpoint: str, headers: dict) -> bool:
    url = f"{BASE_URL}{endpoint}"
    try:
        res = requests.get(url, headers=headers, timeout=10)
    except Exception:
        print(f"FAIL {endpoint}: request error")
        return False
    if res.status_code != 200:
        print(f"FAIL {endpoint}: HTTP {res.status_code}")
        return False
    status = res.json().get("status")
    if status not in {"OK", "WARN"}:
        print(f"FAIL {endpoint}: status={status}")
        return False
    print(f"OK   {endpoint}: status={status}")
    return True


headers = login()
ok = bool(headers)
ok = check("/doctor", headers) and ok
ok = check("/doctor/payments", headers) and ok

sys.exit(0 if ok else 1)
