"""Diagnostic probes and the fold of their results into the state machine.

Implements the Strategy pattern for per-category health checks.

Classes
-------
BaseProbe
    Abstract base class for all probes.
InterfaceProbe, RoutingProbe, DnsProbe, ConnectivityProbe, FirewallProbe,
NetworkManagerProbe
    Thin Linux implementations over ``ip``, ``ping``, ``nft``/``iptables``
    and ``systemctl``.
ProbeSuite
    Runs a set of probes concurrently and returns every result at once.

Functions
---------
fold_results
    Feed a complete result set into the state machine and classify it.
"""

from __future__ import annotations

import logging
import re
import socket
from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path

from netrepair.domain.enums import DiagnosticCategory, Trigger
from netrepair.domain.events import DiagnosisCompleted
from netrepair.domain.exceptions import NetRepairError, ProbeError
from netrepair.domain.values import DiagnosticResult
from netrepair.infrastructure.commands import CommandRunner
from netrepair.infrastructure.config import RepairConfig
from netrepair.services.state_machine import StateMachine

logger = logging.getLogger(__name__)

_OK_TRIGGER_FOR: dict[DiagnosticCategory, Trigger] = {
    DiagnosticCategory.ROUTING: Trigger.ROUTE_OK,
    DiagnosticCategory.INTERFACES: Trigger.CARRIER_OK,
    DiagnosticCategory.CONNECTIVITY: Trigger.INTERNET_OK,
}


# ===================================================================== #
#  Base Probe (ABC)                                                      #
# ===================================================================== #


class BaseProbe(ABC):
    """Abstract base class for diagnostic probes.

    Subclasses set :attr:`category` and implement :meth:`run`.  A probe that
    cannot run at all raises :class:`~netrepair.domain.exceptions.ProbeError`
    (or lets a command error escape); :class:`ProbeSuite` turns that into an
    *unknown* result.
    """

    category: DiagnosticCategory

    @abstractmethod
    def run(self) -> DiagnosticResult:
        """Inspect the host and report on :attr:`category`."""


class _CommandProbe(BaseProbe):
    """Shared constructor for probes that shell out."""

    def __init__(self, runner: CommandRunner, config: RepairConfig | None = None) -> None:
        self._runner = runner
        self._config = config or RepairConfig()


# ===================================================================== #
#  Linux probes                                                          #
# ===================================================================== #

_LINK_RE = re.compile(r"^\d+:\s+(?P<name>[^:@]+)(?:@[^:]+)?:\s+<(?P<flags>[^>]*)>")


def parse_links(output: str) -> dict[str, dict[str, bool]]:
    """Parse ``ip -o link show`` into ``{name: {"up": .., "carrier": ..}}``."""
    links: dict[str, dict[str, bool]] = {}
    for line in output.splitlines():
        match = _LINK_RE.match(line.strip())
        if match is None:
            continue
        flags = set(match.group("flags").split(","))
        links[match.group("name").strip()] = {
            "up": "UP" in flags,
            "carrier": "LOWER_UP" in flags,
        }
    return links


class InterfaceProbe(_CommandProbe):
    """Passes when at least one non-loopback interface has carrier."""

    category = DiagnosticCategory.INTERFACES

    def run(self) -> DiagnosticResult:
        result = self._runner.run(["ip", "-o", "link", "show"])
        if not result.ok:
            return DiagnosticResult.unknown_result(
                self.category, f"ip link failed: {result.stderr.strip()}"
            )
        links = {
            name: state
            for name, state in parse_links(result.stdout).items()
            if name != "lo"
        }
        if not links:
            return DiagnosticResult(self.category, False, "No network interfaces found")

        with_carrier = sorted(n for n, s in links.items() if s["carrier"])
        down = sorted(n for n, s in links.items() if not s["up"])
        if with_carrier:
            detail = f"Carrier on {', '.join(with_carrier)}"
            if down:
                detail += f"; down: {', '.join(down)}"
            return DiagnosticResult(self.category, True, detail, metadata={"links": links})
        return DiagnosticResult(
            self.category,
            False,
            f"No interface has carrier (down: {', '.join(down) or 'none'})",
            metadata={"links": links},
        )


class RoutingProbe(_CommandProbe):
    """Passes when a default route exists."""

    category = DiagnosticCategory.ROUTING

    def run(self) -> DiagnosticResult:
        result = self._runner.run(["ip", "route", "show", "default"])
        if not result.ok:
            return DiagnosticResult.unknown_result(
                self.category, f"ip route failed: {result.stderr.strip()}"
            )
        routes = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not routes:
            return DiagnosticResult(self.category, False, "No default route")
        gateways = re.findall(r"via (\S+)", result.stdout)
        detail = f"Default route via {gateways[0]}" if gateways else "Default route present"
        if len(routes) > 1:
            detail += f" ({len(routes)} default routes)"
        return DiagnosticResult(
            self.category, True, detail, metadata={"routes": routes}
        )


def count_nameservers(text: str) -> int:
    """Number of ``nameserver`` lines in resolver-file content."""
    return sum(
        1 for line in text.splitlines() if line.strip().startswith("nameserver")
    )


class DnsProbe(_CommandProbe):
    """Passes when nameservers are configured and a test name resolves."""

    category = DiagnosticCategory.DNS

    def run(self) -> DiagnosticResult:
        resolv = Path(self._config.resolv_conf_path)
        try:
            count = count_nameservers(resolv.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return DiagnosticResult(self.category, False, f"{resolv} not found")
        except OSError as exc:
            raise ProbeError(
                f"Cannot read {resolv}: {exc}", category=self.category.value
            ) from exc

        if count == 0:
            return DiagnosticResult(self.category, False, f"No nameservers in {resolv}")

        domain = self._config.dns_test_domain
        timeout = self._config.command_timeout
        try:
            self._resolve(domain, timeout)
        except FutureTimeoutError:
            return DiagnosticResult(
                self.category,
                False,
                f"Resolving {domain} timed out after {timeout}s",
                dns_server_count=count,
            )
        except socket.gaierror as exc:
            return DiagnosticResult(
                self.category,
                False,
                f"Failed to resolve {domain}: {exc}",
                dns_server_count=count,
            )
        return DiagnosticResult(
            self.category,
            True,
            f"{count} nameserver(s); {domain} resolves",
            dns_server_count=count,
        )

    @staticmethod
    def _resolve(domain: str, timeout: float) -> None:
        # getaddrinfo has no timeout of its own; the worker is abandoned on expiry.
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            pool.submit(socket.getaddrinfo, domain, None).result(timeout=timeout)
        finally:
            pool.shutdown(wait=False)


class ConnectivityProbe(_CommandProbe):
    """Passes when the connectivity target answers ICMP echo."""

    category = DiagnosticCategory.CONNECTIVITY

    def run(self) -> DiagnosticResult:
        target = self._config.connectivity_target
        result = self._runner.run(
            ["ping", "-c", str(self._config.ping_count), "-W", "2", target]
        )
        if result.ok:
            return DiagnosticResult(self.category, True, f"{target} is reachable")
        return DiagnosticResult(self.category, False, f"{target} is not reachable")


class FirewallProbe(_CommandProbe):
    """Fails when outbound traffic is dropped by default policy."""

    category = DiagnosticCategory.FIREWALL

    def run(self) -> DiagnosticResult:
        if self._runner.which("nft"):
            result = self._runner.run(["nft", "list", "chain", "inet", "filter", "output"])
            if result.ok:
                dropping = "policy drop" in result.stdout
                return self._verdict(dropping, "nftables")
        if self._runner.which("iptables"):
            result = self._runner.run(["iptables", "-S", "OUTPUT"])
            if result.ok:
                dropping = "-P OUTPUT DROP" in result.stdout
                return self._verdict(dropping, "iptables")
            return DiagnosticResult.unknown_result(
                self.category, f"iptables failed: {result.stderr.strip()}"
            )
        return DiagnosticResult.unknown_result(self.category, "No firewall tool available")

    def _verdict(self, dropping: bool, backend: str) -> DiagnosticResult:
        if dropping:
            return DiagnosticResult(
                self.category, False, f"{backend}: OUTPUT policy drops traffic"
            )
        return DiagnosticResult(self.category, True, f"{backend}: OUTPUT policy allows traffic")


class NetworkManagerProbe(_CommandProbe):
    """Passes when NetworkManager is active, or not installed at all."""

    category = DiagnosticCategory.NETWORK_MANAGER

    def run(self) -> DiagnosticResult:
        if not self._runner.which("nmcli"):
            return DiagnosticResult(self.category, True, "NetworkManager not installed")
        result = self._runner.run(["systemctl", "is-active", "NetworkManager"])
        state = result.stdout.strip() or "unknown"
        if result.ok and state == "active":
            return DiagnosticResult(self.category, True, "NetworkManager is active")
        return DiagnosticResult(self.category, False, f"NetworkManager is {state}")


def default_probes(runner: CommandRunner, config: RepairConfig) -> list[BaseProbe]:
    """The Linux probe set in diagnostic order."""
    return [
        InterfaceProbe(runner, config),
        RoutingProbe(runner, config),
        DnsProbe(runner, config),
        ConnectivityProbe(runner, config),
        FirewallProbe(runner, config),
        NetworkManagerProbe(runner, config),
    ]


# ===================================================================== #
#  Probe Suite                                                           #
# ===================================================================== #


class ProbeSuite:
    """Runs probes concurrently and returns their results together.

    Parameters
    ----------
    probes:
        Probes to run, one per category.
    max_workers:
        Thread-pool size.  ``1`` runs probes sequentially.
    """

    def __init__(self, probes: Sequence[BaseProbe], max_workers: int = 4) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._probes = list(probes)
        self._max_workers = max_workers

    @property
    def probes(self) -> list[BaseProbe]:
        return list(self._probes)

    def get(self, category: DiagnosticCategory) -> BaseProbe | None:
        """Return the probe for *category*, or ``None``."""
        for probe in self._probes:
            if probe.category == category:
                return probe
        return None

    def restricted(self, categories: Collection[DiagnosticCategory]) -> ProbeSuite:
        """A suite with only the probes for *categories*, same worker count."""
        return ProbeSuite(
            [p for p in self._probes if p.category in categories], self._max_workers
        )

    def run_one(self, probe: BaseProbe) -> DiagnosticResult:
        """Run *probe*, mapping "could not run" errors to an unknown result."""
        try:
            return probe.run()
        except (NetRepairError, OSError) as exc:
            logger.warning("Probe %s could not run: %s", probe.category.value, exc)
            return DiagnosticResult.unknown_result(probe.category, str(exc))

    def run_all(self) -> tuple[DiagnosticResult, ...]:
        """Run every probe; returns only after all of them finished."""
        if not self._probes:
            return ()
        if self._max_workers == 1:
            return tuple(self.run_one(p) for p in self._probes)
        workers = min(self._max_workers, len(self._probes))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as pool:
            return tuple(pool.map(self.run_one, self._probes))


# ===================================================================== #
#  Fold                                                                  #
# ===================================================================== #


def fold_results(machine: StateMachine, results: Sequence[DiagnosticResult]) -> None:
    """Apply a complete result set to a machine that is ``DIAGNOSING``.

    Passing categories fire their ``*_OK`` trigger, failing ones leave the
    field at its cleared value, unknown ones are excluded from
    classification.  ``DIAGNOSIS_COMPLETE`` is fired last so the priority
    rules always see the whole picture.
    """
    unknown: set[DiagnosticCategory] = set()
    for result in results:
        if result.unknown:
            unknown.add(result.category)
            continue
        if not result.passed:
            continue
        if result.category == DiagnosticCategory.DNS:
            machine.fire(Trigger.DNS_OK, dns_server_count=max(result.dns_server_count, 1))
        elif result.category in _OK_TRIGGER_FOR:
            machine.fire(_OK_TRIGGER_FOR[result.category])

    machine.fire(Trigger.DIAGNOSIS_COMPLETE, unknown=frozenset(unknown))

    if machine.event_bus is not None:
        machine.event_bus.publish(
            DiagnosisCompleted(
                source_id=machine.context.session_id,
                state=machine.state,
                results=tuple(results),
            )
        )
