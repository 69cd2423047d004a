#!/usr/bin/env python3
"""Configuration validation script."""

import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from classmarket.config.loader import ConfigLoader
from classmarket.config.validation import ConfigValidator
from classmarket.errors import ConfigurationError


def main():
    """Main validation function."""
    print("🔍 Validating classmarket configuration...")

    loader = ConfigLoader.create()
    print(f"📁 Config directory: {loader.config_dir}")

    all_valid = True

    try:
        merged = loader.merge_config()
    except ConfigurationError as e:
        print(f"❌ Could not read configuration: {e}")
        sys.exit(1)

    errors = ConfigValidator.validate_full_config(merged)
    if errors:
        print(f"❌ Found {len(errors)} validation errors:")
        for error in errors:
            print(f"  • {error.field}: {error.message} (value: {error.value})")
        all_valid = False
    else:
        print("✅ All sections passed validation")

    try:
        config = loader.load()
    except ConfigurationError as e:
        print(f"❌ Failed to build configuration: {e}")
        all_valid = False
    else:
        token_state = "set" if config.scheduler.auth_token else "missing (trigger disabled)"
        print(f"\n📋 Reporting timezone: UTC+{config.scheduler.timezone_offset_hours}")
        print(f"📋 Commission rate: {config.settlement.commission_rate}")
        print(f"📋 Event trigger hour: {config.events.default_trigger_hour}")
        print(f"📋 Scheduler auth token: {token_state}")

    if all_valid:
        print("\n🎉 Configuration validation passed!")
        sys.exit(0)
    else:
        print("\n❌ Configuration validation failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
