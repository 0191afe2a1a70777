from __future__ import annotations

import re

"""SUMMARY line format contract (replay and finalize)."""

REPLAY_PATTERN = re.compile(
    r"^SUMMARY\s+drafts=([0-9]+)\s+unchanged=([0-9]+)\s+changed=([0-9]+)\s+failed=([0-9]+)\s+"
    r"writes=([0-9]+)\s+elapsed_sec=([0-9]+\.?[0-9]*)$"
)
FINALIZE_PATTERN = re.compile(
    r"^SUMMARY\s+submission=(\S+)\s+ok=(true|false)\s+health=(OK|WARN|FAIL)\s+"
    r"counts=((?:[A-Za-z0-9_]+:[0-9]+)(?:,[A-Za-z0-9_]+:[0-9]+)*)?$"
)


def test_replay_pattern_example_line():
    m = REPLAY_PATTERN.match("SUMMARY drafts=4 unchanged=3 changed=1 failed=0 writes=12 elapsed_sec=0.84")
    assert m
    assert int(m.group(1)) == sum(int(m.group(i)) for i in (2, 3, 4))


def test_finalize_pattern_example_lines():
    assert FINALIZE_PATTERN.match("SUMMARY submission=sub-1 ok=true health=OK counts=")
    assert FINALIZE_PATTERN.match("SUMMARY submission=sub-1 ok=false health=FAIL counts=defectos:4,lineas:30")
    assert not FINALIZE_PATTERN.match("SUMMARY submission=sub-1 ok=yes health=OK counts=")
