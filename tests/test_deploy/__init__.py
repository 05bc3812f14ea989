"""
Tests for deployment execution.

Covers:
- Running the deployment command and relaying its output
- Walking and reconciling broadcast artifacts
- Decoding receipt logs against build ABIs
"""
