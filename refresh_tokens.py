#!/usr/bin/env python3
"""
Exchange the FreeAgent refresh token for a new access token and print the
values to put back into .env.
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), 'src'))

from config_loader import load_settings, missing_settings
from errors import AuthError
from token_manager import FreeAgentTokenManager


def refresh_freeagent_tokens():
    settings = load_settings()

    missing = missing_settings(settings)
    if missing:
        print("Error: required environment variables are not set")
        print("\nSet the following variables (or add them to .env):")
        for name in missing:
            print(f"export {name}='...'")
        return None

    manager = FreeAgentTokenManager.from_settings(settings)
    print(f"🔄 Refreshing FreeAgent token via {manager.token_url}...")
    print(f"  Client ID: {settings.client_id[:10]}...")

    try:
        access_token = manager.refresh()
    except AuthError as e:
        print(f"\n❌ Token refresh failed: {e.message}")
        if e.details:
            print(f"Response: {e.details}")
        return None

    print("\n✅ Got a new access token!")
    if manager.refresh_token != settings.refresh_token:
        print("🔁 The refresh token was rotated; store the new one too.")

    print("\n📝 Update your environment with:")
    print(f"export FREEAGENT_ACCESS_TOKEN='{access_token}'")
    print(f"export FREEAGENT_REFRESH_TOKEN='{manager.refresh_token}'")
    return {"access_token": access_token, "refresh_token": manager.refresh_token}


if __name__ == "__main__":
    sys.exit(0 if refresh_freeagent_tokens() else 1)
