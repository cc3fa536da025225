#!/usr/bin/env python3
"""
End-to-end smoke run against a live two-factor service:
setup -> verify -> verify-login (TOTP and backup code) -> disable.

Tokens are minted locally, so JWT_SECRET must match the server's.
    BASE_URL=http://localhost:8000 python scripts/e2e_smoke.py
"""

import os
import sys
import time

import pyotp
import requests

from twofactor.core.security import create_access_token

BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
SESSION = requests.Session()


def fail(step: str, resp: requests.Response) -> None:
    print(f"✗ {step} failed: {resp.status_code}")
    try:
        print(f"  Response: {resp.json()}\n")
    except ValueError:
        print(f"  Response: {resp.text}\n")
    sys.exit(1)


def main():
    print("\n" + "=" * 60)
    print("TWO-FACTOR END-TO-END SMOKE TEST")
    print("=" * 60)
    print(f"Base URL: {BASE_URL}\n")

    principal = f"smoke_{int(time.time())}"
    headers = {"Authorization": f"Bearer {create_access_token(principal)}"}

    print("STEP 0: Health check")
    try:
        resp = SESSION.get(f"{BASE_URL}/health", timeout=5)
        print(f"✓ Backend alive: {resp.status_code}\n")
    except requests.RequestException as e:
        print(f"✗ Backend offline: {e}\n")
        sys.exit(1)

    print("STEP 1: Setup")
    resp = SESSION.post(f"{BASE_URL}/2fa/setup", json={"label": principal}, headers=headers, timeout=5)
    if resp.status_code != 200:
        fail("Setup", resp)
    data = resp.json()
    secret = data["secret"]
    backup_codes = data["backup_codes"]
    print(f"✓ Secret issued, {len(backup_codes)} backup codes")
    print(f"  URI: {data['provisioning_uri'][:50]}...\n")

    print("STEP 2: Confirm enrollment")
    code = pyotp.TOTP(secret).now()
    resp = SESSION.post(f"{BASE_URL}/2fa/verify", json={"code": code}, headers=headers, timeout=5)
    if resp.status_code != 200:
        fail("Verify", resp)
    print(f"✓ 2FA state: {resp.json()['state']}\n")

    print("STEP 3: Login with a backup code")
    mfa_token = create_access_token(principal, extra={"mfa_pending": True})
    resp = SESSION.post(
        f"{BASE_URL}/2fa/verify-login",
        json={"code": backup_codes[0], "mfa_token": mfa_token},
        timeout=5,
    )
    if resp.status_code != 200:
        fail("Verify login", resp)
    print(f"✓ Logged in, {resp.json()['backup_codes_remaining']} backup codes left\n")

    print("STEP 4: Replaying the same backup code must fail")
    resp = SESSION.post(
        f"{BASE_URL}/2fa/verify-login",
        json={"code": backup_codes[0], "mfa_token": mfa_token},
        timeout=5,
    )
    if resp.status_code != 400:
        fail("Backup code replay check", resp)
    print("✓ Rejected\n")

    print("STEP 5: Disable with another backup code")
    resp = SESSION.post(f"{BASE_URL}/2fa/disable", json={"code": backup_codes[1]}, headers=headers, timeout=5)
    if resp.status_code != 200:
        fail("Disable", resp)
    status = SESSION.get(f"{BASE_URL}/2fa/status", headers=headers, timeout=5).json()
    print(f"✓ 2FA state: {status['state']}\n")

    print("=" * 60)
    print("✓ END-TO-END SMOKE TEST COMPLETED SUCCESSFULLY")
    print("=" * 60)


if __name__ == "__main__":
    main()
