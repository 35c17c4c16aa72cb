"""
Utility subpackage for landbase:
- config_loader   → YAML loader, overrides & defaults
- logging_utils   → unified logger setup
"""
