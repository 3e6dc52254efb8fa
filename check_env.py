#!/usr/bin/env python
from dotenv import load_dotenv
import os

# Load .env file
load_dotenv()

# Check environment variables
print("Environment Variables Status:")
print("=" * 40)

base_url = os.getenv('FREEAGENT_BASE_URL', 'https://api.freeagent.com/v2')
print(f"✓ FREEAGENT_BASE_URL: {base_url} ({'sandbox' if 'sandbox' in base_url else 'production'})")

for name in ('FREEAGENT_CLIENT_ID', 'FREEAGENT_CLIENT_SECRET', 'FREEAGENT_REFRESH_TOKEN'):
    if os.getenv(name):
        print(f"✓ {name}: SET")
    else:
        print(f"✗ {name}: NOT SET")

if os.getenv('FREEAGENT_ACCESS_TOKEN'):
    print("✓ FREEAGENT_ACCESS_TOKEN: SET")
else:
    print("✗ FREEAGENT_ACCESS_TOKEN: NOT SET (refreshed on first 401)")

if os.getenv('AWS_ACCESS_KEY_ID') and os.getenv('AWS_SECRET_ACCESS_KEY'):
    print(f"✓ AWS credentials: SET (region {os.getenv('AWS_REGION', 'eu-west-2')})")
else:
    print("✗ AWS credentials: NOT SET (boto3 falls back to its default chain)")

user_agent = os.getenv('FREEAGENT_USER_AGENT')
print(f"\nUser-Agent: {user_agent or '(default)'}")
print(f"Timeout: {os.getenv('FREEAGENT_TIMEOUT_S', '30')}s")
print(f"DRY_RUN mode: {os.getenv('DRY_RUN', 'false')}")
