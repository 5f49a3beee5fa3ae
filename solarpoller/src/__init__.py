"""
Solar poller daemon package.

Polls a hybrid inverter / battery system over Modbus on a fixed interval,
decodes the configured registers into engineering values and appends them
as timestamped readings to a local SQLite database.

CHANGELOG:
- 2026-10-12: Initial creation

TODO:
- None
"""
