"""Utility functions for resource parsing, scaling and matching."""

import json
import re
from typing import Callable, Dict, Optional

from .config import (
    INSUFFICIENT_RESOURCE_PATTERNS,
    IMAGE_PULL_FAILURE_REASONS,
    REDUCTION_FACTOR,
    MIN_CPU_REQUEST,
    MIN_MEMORY_REQUEST,
    MIN_CPU_LIMIT,
    MIN_MEMORY_LIMIT,
)
from .models import ResourceSpec


def parse_cpu(cpu_string: str) -> float:
    """
    Parse CPU string to cores (float).

    Examples:
        "100m" -> 0.1
        "1" -> 1.0
        "2500m" -> 2.5
    """
    if not cpu_string:
        return 0.0

    cpu_string = str(cpu_string).strip()

    if cpu_string.endswith('m'):
        return float(cpu_string[:-1]) / 1000
    return float(cpu_string)


def format_cpu(cores: float) -> str:
    """
    Format CPU cores to Kubernetes string.

    Examples:
        0.1 -> "100m"
        1.5 -> "1500m"
    """
    millicores = int(round(cores * 1000))
    return f"{millicores}m"


def parse_memory(memory_string: str) -> int:
    """
    Parse memory string to bytes.

    Examples:
        "128Mi" -> 134217728
        "1Gi" -> 1073741824
        "512M" -> 536870912
    """
    if not memory_string:
        return 0

    memory_string = str(memory_string).strip()

    units = {
        'Ki': 1024,
        'Mi': 1024 ** 2,
        'Gi': 1024 ** 3,
        'Ti': 1024 ** 4,
        'K': 1000,
        'k': 1000,
        'M': 1000 ** 2,
        'G': 1000 ** 3,
        'T': 1000 ** 4,
    }

    for suffix, multiplier in units.items():
        if memory_string.endswith(suffix):
            value = float(memory_string[:-len(suffix)])
            return int(value * multiplier)

    # Plain bytes
    return int(float(memory_string))


def format_memory(bytes_value: int) -> str:
    """
    Format bytes to a Kubernetes memory string.

    Whole gibibytes are written as Gi, everything else is truncated to Mi.
    """
    mi = int(bytes_value // (1024 ** 2))
    if mi >= 1024 and mi % 1024 == 0:
        return f"{mi // 1024}Gi"
    return f"{mi}Mi"


def is_resource_insufficient_message(message: Optional[str]) -> bool:
    """Check if a scheduling message indicates insufficient resources."""
    if not message:
        return False

    for pattern in INSUFFICIENT_RESOURCE_PATTERNS:
        if re.search(pattern, message, re.IGNORECASE):
            return True
    return False


def is_image_pull_failure(reason: Optional[str]) -> bool:
    """Check if a container waiting reason is an image pull failure."""
    if not reason:
        return False
    return reason.split(":", 1)[0].strip() in IMAGE_PULL_FAILURE_REASONS


def _scale_value(
    current: Optional[str],
    floor: str,
    factor: float,
    parse: Callable,
    fmt: Callable,
) -> Optional[str]:
    # Unset values stay unset; values already at or below the floor are kept.
    if not current:
        return current
    current_value = parse(current)
    floor_value = parse(floor)
    if current_value <= floor_value:
        return current
    return fmt(max(floor_value, current_value * factor))


def scale_resource_spec(spec: ResourceSpec, factor: float = REDUCTION_FACTOR) -> ResourceSpec:
    """
    Scale requests and limits down by ``factor``.

    Values never go below the configured floors and never go up. A request
    is clamped to its limit so the result is always a valid spec. When every
    value is already at its floor the returned spec equals the input.
    """
    cpu_request = _scale_value(spec.cpu_request, MIN_CPU_REQUEST, factor, parse_cpu, format_cpu)
    memory_request = _scale_value(spec.memory_request, MIN_MEMORY_REQUEST, factor, parse_memory, format_memory)
    cpu_limit = _scale_value(spec.cpu_limit, MIN_CPU_LIMIT, factor, parse_cpu, format_cpu)
    memory_limit = _scale_value(spec.memory_limit, MIN_MEMORY_LIMIT, factor, parse_memory, format_memory)

    if cpu_request and cpu_limit and parse_cpu(cpu_request) > parse_cpu(cpu_limit):
        cpu_request = cpu_limit
    if memory_request and memory_limit and parse_memory(memory_request) > parse_memory(memory_limit):
        memory_request = memory_limit

    return ResourceSpec(
        container=spec.container,
        cpu_request=cpu_request,
        memory_request=memory_request,
        cpu_limit=cpu_limit,
        memory_limit=memory_limit,
    )


def parse_selector_terms(selector: str) -> Dict[str, str]:
    """
    Extract the equality terms of a label selector.

    Set-based terms (``in``, ``notin``, ``!=``, bare keys) are ignored.

    Examples:
        "app=web,tier==frontend" -> {"app": "web", "tier": "frontend"}
        "app=web,env in (dev)" -> {"app": "web"}
    """
    terms = {}
    # Split on commas outside of parentheses
    for term in re.split(r",(?![^()]*\))", selector or ""):
        term = term.strip()
        if not term or "!=" in term:
            continue
        match = re.fullmatch(r"([\w./-]+)\s*==?\s*([\w.-]*)", term)
        if match:
            terms[match.group(1)] = match.group(2)
    return terms


def selector_matches(label_selector: Optional[Dict[str, str]], labels: Dict[str, str]) -> bool:
    """Check if every key/value of ``label_selector`` is present in ``labels``."""
    if not label_selector:
        return False

    for key, value in label_selector.items():
        if labels.get(key) != value:
            return False

    return True


def serialize_resources(resources: Dict) -> str:
    """Serialize resources dict to JSON string for annotation."""
    return json.dumps(resources, sort_keys=True)


def parse_duration(value: str) -> float:
    """
    Parse a duration into seconds.

    Examples:
        "500ms" -> 0.5
        "10s" -> 10.0
        "2m" -> 120.0
        "1h" -> 3600.0
        "15" -> 15.0
    """
    value = str(value).strip()
    match = re.fullmatch(r"(\d+(?:\.\d+)?)(ms|s|m|h)?", value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")

    number = float(match.group(1))
    unit = match.group(2) or "s"
    multipliers = {"ms": 0.001, "s": 1, "m": 60, "h": 3600}
    return number * multipliers[unit]
