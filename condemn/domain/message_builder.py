from __future__ import annotations


def notification_status(early_seconds: int | None) -> str:
    return "dead" if early_seconds is None else "early"


def build_notification_message(name: str, early_seconds: int | None) -> str:
    if early_seconds is None:
        return f"Switch `{name}` failed to make its deadline."
    return f"Switch `{name}` checked in early by {early_seconds} seconds"


def build_fingerprint(name: str, early_seconds: int | None) -> str:
    return f"{name}={'FAIL' if early_seconds is None else 'EARLY'}"
