from __future__ import annotations

# Runtime lifecycle
STARTUP_INVALID_CONFIG = "startup.invalid_config"
STARTUP_STORE_UNREACHABLE = "startup.store_unreachable"
STARTUP_READY = "startup.ready"
SHUTDOWN_INTERRUPT = "shutdown.interrupt"
SHUTDOWN_COMPLETE = "shutdown.complete"
SHUTDOWN_SCANNER_TIMEOUT = "shutdown.scanner_timeout"
SHUTDOWN_UNEXPECTED_ERROR = "shutdown.unexpected_error"
SHUTDOWN_RESOURCE_CLOSE_FAILED = "shutdown.resource_close_failed"

# Switch lifecycle
SWITCH_CREATED = "switch.created"
SWITCH_RENEWED = "switch.renewed"
SWITCH_EARLY = "switch.early"
SWITCH_LATE_RENEWAL = "switch.late_renewal"
SWITCH_CHECKED_IN = "switch.checked_in"
SWITCH_CHECK_IN_NOT_FOUND = "switch.check_in_not_found"
SWITCH_DEAD = "switch.dead"

# Expiry scan
SCAN_STARTED = "scan.started"
SCAN_TICK_COMPLETE = "scan.tick_complete"
SCAN_TICK_SKIPPED = "scan.tick_skipped"
SCAN_TICK_FAILED = "scan.tick_failed"
SCAN_STOPPED = "scan.stopped"
SCAN_CLAIM_RACE = "scan.claim_race"

# Notifications
NOTIFICATION_DEAD = "notification.dead"
NOTIFICATION_EARLY = "notification.early"
NOTIFICATION_DISPATCHED = "notification.dispatched"
NOTIFICATION_FAILED = "notification.failed"
NOTIFICATION_RETRY = "notification.retry"
NOTIFICATION_CIRCUIT_OPENED = "notification.circuit_opened"
NOTIFICATION_CIRCUIT_BLOCKED = "notification.circuit_blocked"
NOTIFICATION_CIRCUIT_CLOSED = "notification.circuit_closed"
NOTIFICATION_COMMAND_SPAWNED = "notification.command.spawned"
NOTIFICATION_COMMAND_EXITED = "notification.command.exited"
NOTIFICATION_COMMAND_TIMEOUT = "notification.command.timeout"
NOTIFICATION_COMMAND_WAIT_FAILED = "notification.command.wait_failed"

# Store
STORE_DECODE_FAILED = "store.decode_failed"
STORE_SNAPSHOT_INVALID_JSON = "store.snapshot.invalid_json"
STORE_SNAPSHOT_READ_FAILED = "store.snapshot.read_failed"
STORE_SNAPSHOT_BACKUP_FAILED = "store.snapshot.backup_failed"
STORE_SNAPSHOT_LOADED = "store.snapshot.loaded"

# HTTP
HTTP_REQUEST_REJECTED = "http.request_rejected"
HTTP_STORE_ERROR = "http.store_error"

# CLI
COMMAND_FAILED = "command.failed"
