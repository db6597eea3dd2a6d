"""Bind port allocation for stcp visitor proxies.

Allocation is a pure function of the used-port snapshot handed in by the
caller. Nothing here remembers a "next port"; ports freed by deleting a site
are handed out again.
"""

from collections.abc import Iterable

from pydantic import BaseModel, Field

from .common.logging import get_logger
from .config import DEFAULT_SERVICE_PORTS, DEFAULT_START_PORT
from .exceptions import ExhaustedRangeError
from .utils import MAX_PORT, validate_port

logger = get_logger(__name__)

MAX_LISTED_AVAILABLE = 20
DEFAULT_SUMMARY_SPAN = 1000


class PortUsageSummary(BaseModel):
    """Port usage inside an allocation range."""

    start_port: int
    end_port: int
    range_size: int
    total_used: int = Field(description="Used ports overall, inside the range or not")
    used_in_range: int
    available_in_range: int
    utilization_rate: float = Field(description="Percentage of the range in use")
    next_available: int | None
    used_ports: list[int] = Field(default_factory=list)
    available_ports: list[int] = Field(
        default_factory=list, description=f"First {MAX_LISTED_AVAILABLE} free ports"
    )


class PortGap(BaseModel):
    """A run of unused ports between two used ones."""

    start: int
    end: int
    size: int


def _check_range(start_port: int, max_port: int) -> None:
    validate_port(start_port, "Start port")
    validate_port(max_port, "Max port")
    if start_port > max_port:
        raise ValueError(f"Start port {start_port} is greater than max port {max_port}")


def allocate(
    used_ports: Iterable[int],
    start_port: int = DEFAULT_START_PORT,
    max_port: int = MAX_PORT,
) -> int:
    """Return the lowest port >= start_port that is not in used_ports.

    Args:
        used_ports: Ports already bound
        start_port: First candidate port
        max_port: Last candidate port (inclusive)

    Returns:
        Allocated port

    Raises:
        ExhaustedRangeError: If every port up to max_port is used
        ValueError: If the range itself is invalid
    """
    _check_range(start_port, max_port)
    used = set(used_ports)

    for port in range(start_port, max_port + 1):
        if port not in used:
            return port

    raise ExhaustedRangeError(start_port, max_port)


def allocate_many(
    used_ports: Iterable[int],
    count: int,
    start_port: int = DEFAULT_START_PORT,
    consecutive: bool = False,
    max_port: int = MAX_PORT,
) -> list[int]:
    """Allocate several ports at once.

    Args:
        used_ports: Ports already bound
        count: Number of ports wanted; zero or less gives an empty list
        start_port: First candidate port
        consecutive: Require one contiguous block of ports
        max_port: Last candidate port (inclusive)

    Returns:
        Allocated ports in increasing order

    Raises:
        ExhaustedRangeError: If the range cannot supply count ports
    """
    if count <= 0:
        return []
    _check_range(start_port, max_port)
    used = set(used_ports)

    if consecutive:
        run_start = start_port
        for port in range(start_port, max_port + 1):
            if port in used:
                run_start = port + 1
                continue
            if port - run_start + 1 == count:
                return list(range(run_start, port + 1))
        raise ExhaustedRangeError(start_port, max_port, count)

    allocated: list[int] = []
    for _ in range(count):
        try:
            port = allocate(used, start_port, max_port)
        except ExhaustedRangeError as e:
            raise ExhaustedRangeError(start_port, max_port, count) from e
        used.add(port)
        allocated.append(port)
    return allocated


def allocate_for_sites(
    used_ports: Iterable[int],
    site_count: int,
    service_ports: Iterable[int] = DEFAULT_SERVICE_PORTS,
    start_port: int = DEFAULT_START_PORT,
    max_port: int = MAX_PORT,
) -> list[dict[int, int]]:
    """Allocate bind ports for a batch of new sites.

    Returns:
        One ``{service_port: bind_port}`` mapping per site
    """
    service_ports = list(service_ports)
    ports = allocate_many(
        used_ports, site_count * len(service_ports), start_port, max_port=max_port
    )

    allocations = []
    for index in range(site_count):
        chunk = ports[index * len(service_ports):(index + 1) * len(service_ports)]
        allocations.append(dict(zip(service_ports, chunk)))

    logger.debug("Allocated ports for sites", sites=site_count, ports=len(ports))
    return allocations


def summarize_ports(
    used_ports: Iterable[int],
    start_port: int = DEFAULT_START_PORT,
    end_port: int | None = None,
) -> PortUsageSummary:
    """Describe how much of [start_port, end_port] is in use.

    end_port defaults to start_port + 1000, capped at 65535.
    """
    if end_port is None:
        end_port = min(start_port + DEFAULT_SUMMARY_SPAN, MAX_PORT)
    _check_range(start_port, end_port)

    used = set(used_ports)
    used_in_range = sorted(port for port in used if start_port <= port <= end_port)
    used_set = set(used_in_range)
    range_size = end_port - start_port + 1
    available_count = range_size - len(used_in_range)

    available: list[int] = []
    for port in range(start_port, end_port + 1):
        if port not in used_set:
            available.append(port)
            if len(available) == MAX_LISTED_AVAILABLE:
                break

    return PortUsageSummary(
        start_port=start_port,
        end_port=end_port,
        range_size=range_size,
        total_used=len(used),
        used_in_range=len(used_in_range),
        available_in_range=available_count,
        utilization_rate=round(len(used_in_range) / range_size * 100, 2),
        next_available=available[0] if available else None,
        used_ports=used_in_range,
        available_ports=available,
    )


def find_port_gaps(used_ports: Iterable[int], min_gap_size: int = 10) -> list[PortGap]:
    """Find runs of at least min_gap_size free ports between used ports."""
    ordered = sorted(set(used_ports))
    gaps = []
    for lower, upper in zip(ordered, ordered[1:]):
        size = upper - lower - 1
        if size >= min_gap_size:
            gaps.append(PortGap(start=lower + 1, end=upper - 1, size=size))
    return gaps
