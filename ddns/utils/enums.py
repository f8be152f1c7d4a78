"""Enums used across the service."""

from __future__ import annotations

from enum import Enum


class RequestMethod(str, Enum):
    READ = "READ"
    WRITE = "WRITE"


class RecordState(str, Enum):
    UNCLAIMED = "UNCLAIMED"
    CLAIMED = "CLAIMED"
