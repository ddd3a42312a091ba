#!/usr/bin/env python3

import os
import sys


def setup():
    print("=== psicomatch setup ===\n")

    if os.path.exists('.env'):
        print("⚠️  .env file already exists!")
        response = input("Do you want to overwrite it? (y/N): ")
        if response.lower() != 'y':
            print("Setup cancelled.")
            return

    print("\nPlease provide the following information:\n")

    db_path = input("1. Database path (default: psicomatch.db): ").strip() or "psicomatch.db"
    log_file = input("2. Log file path (default: logs/psicomatch.log): ").strip() or "logs/psicomatch.log"
    log_level = input("3. Log level (default: INFO): ").strip().upper() or "INFO"
    api_host = input("4. API host (default: 127.0.0.1): ").strip() or "127.0.0.1"
    api_port = input("5. API port (default: 5001): ").strip() or "5001"

    if not api_port.isdigit():
        print("❌ API port must be a number!")
        sys.exit(1)

    env_content = f"""DATABASE_PATH={db_path}
LOG_FILE={log_file}
LOG_LEVEL={log_level}
API_HOST={api_host}
API_PORT={api_port}
"""

    with open('.env', 'w') as f:
        f.write(env_content)

    print("\n✅ .env file created successfully!")
    print("\nYou can now run the API with: python -m psicomatch.main")


if __name__ == '__main__':
    setup()
