from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from soboss.commands.processor import (
    HIGHEST_SOURCE,
    JOIN_SPEAKER,
    LOWEST_SOURCE,
    PLAY_STATE,
    PLAY_STATES,
    SET_VOLUME,
    SOURCE_SPEAKERS,
    TARGET_SPEAKERS,
    unknown_commands,
)
from soboss.config import ConfigProvider, DeviceConfig, SonosConfig, parse_device_config
from soboss.core.errors import ConfigurationError
from soboss.core.logging import get_logger
from soboss.devices.device import ON_AVAILABLE, ON_UNAVAILABLE


class CheckStatus(str, Enum):
    OK = "ok"
    WARN = "warn"
    FAIL = "fail"


@dataclass(frozen=True)
class CheckResult:
    name: str
    status: CheckStatus
    details: str


def run_startup_checks(config: ConfigProvider) -> List[CheckResult]:
    """
    Validates the config sections before anything touches the network.
    FAIL means the process can't run; WARN means some actions will be skipped.
    """
    log = get_logger(component="startup_checks")
    results: List[CheckResult] = []

    sonos: Optional[SonosConfig] = None
    try:
        config.ping()
        results.append(CheckResult(name="ping_config", status=CheckStatus.OK, details="ping config OK"))
    except ConfigurationError as e:
        results.append(CheckResult(name="ping_config", status=CheckStatus.FAIL, details=str(e)))

    try:
        sonos = config.sonos()
        results.append(
            CheckResult(
                name="sonos_config",
                status=CheckStatus.OK,
                details="%d speaker(s) configured" % len(sonos.speakers),
            )
        )
    except ConfigurationError as e:
        results.append(CheckResult(name="sonos_config", status=CheckStatus.FAIL, details=str(e)))

    results.extend(_check_devices(config, set(sonos.identifiers) if sonos is not None else None))

    counts: Dict[CheckStatus, int] = {s: sum(1 for r in results if r.status == s) for s in CheckStatus}
    log.info(
        "startup_checks_complete",
        ok=counts[CheckStatus.OK],
        warn=counts[CheckStatus.WARN],
        fail=counts[CheckStatus.FAIL],
    )
    for r in results:
        if r.status == CheckStatus.OK:
            log.info("startup_check", name=r.name, status=r.status.value, details=r.details)
        else:
            log.warning("startup_check", name=r.name, status=r.status.value, details=r.details)

    return results


def _check_devices(config: ConfigProvider, known_speakers: Optional[Set[str]]) -> List[CheckResult]:
    try:
        entries = config.devices()
    except ConfigurationError as e:
        return [CheckResult(name="devices_config", status=CheckStatus.FAIL, details=str(e))]

    results: List[CheckResult] = []
    devices: List[DeviceConfig] = []
    for i, raw in enumerate(entries):
        try:
            devices.append(parse_device_config(raw))
        except ConfigurationError as e:
            results.append(CheckResult(name="device[%d]" % i, status=CheckStatus.WARN, details=str(e)))

    results.insert(
        0,
        CheckResult(name="devices_config", status=CheckStatus.OK, details="%d device(s) configured" % len(devices)),
    )

    for dev in devices:
        problems: List[str] = []
        for trigger, lists in ((ON_AVAILABLE, dev.on_available), (ON_UNAVAILABLE, dev.on_unavailable)):
            for idx, action_list in enumerate(lists or []):
                where = "%s[%d]" % (trigger, idx)
                problems.extend("%s: %s" % (where, p) for p in _action_list_problems(action_list, known_speakers))
        if problems:
            results.append(
                CheckResult(name="device:%s" % dev.identifier, status=CheckStatus.WARN, details="; ".join(problems))
            )
    return results


def _action_list_problems(action_list: Mapping[str, Any], known_speakers: Optional[Set[str]]) -> List[str]:
    problems: List[str] = []
    for key in unknown_commands(action_list):
        problems.append("unknown command %r" % key)

    if PLAY_STATE in action_list and action_list[PLAY_STATE] not in PLAY_STATES:
        problems.append("invalid play state %r" % (action_list[PLAY_STATE],))

    volume = action_list.get(SET_VOLUME)
    if isinstance(volume, str) and volume not in (LOWEST_SOURCE, HIGHEST_SOURCE):
        problems.append("invalid setVolume %r" % volume)
    if isinstance(volume, float) and not math.isfinite(volume):
        problems.append("invalid setVolume %r" % volume)
    if volume in (LOWEST_SOURCE, HIGHEST_SOURCE) and not action_list.get(SOURCE_SPEAKERS):
        problems.append("setVolume %s without sourceSpeakers" % volume)

    if known_speakers is not None:
        named: List[str] = []
        for key in (TARGET_SPEAKERS, SOURCE_SPEAKERS):
            raw = action_list.get(key)
            if isinstance(raw, list):
                named.extend(s for s in raw if isinstance(s, str))
        join = action_list.get(JOIN_SPEAKER)
        if isinstance(join, str):
            named.append(join)
        for name in named:
            if name not in known_speakers:
                problems.append("unknown speaker %r" % name)
    return problems
