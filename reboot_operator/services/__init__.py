"""
Reboot Operator Services

- Operator Service - reconciliation loop, reboot handshake, health endpoint
- Config Service - configuration validation
"""
