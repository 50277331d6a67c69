"""Repair actions, one per repairable category.

Each action declares the files it will modify (:meth:`affected_paths`) so the
orchestrator can snapshot them first, and a human-readable plan
(:meth:`describe`) used for dry runs.  Actions never snapshot or restore
anything themselves.

Classes
-------
BaseRepairAction
    Abstract base class.
InterfaceRepair
    Brings down interfaces up; renews the lease where that left no address.
RoutingRepair
    Drops duplicate default routes, or renews the lease when there is none.
DnsRepair
    Rewrites the resolver file with fallback nameservers.
NetworkManagerRepair
    Restarts the NetworkManager service.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from netrepair.domain.enums import DiagnosticCategory
from netrepair.domain.values import ActionResult
from netrepair.infrastructure.commands import CommandRunner
from netrepair.infrastructure.config import RepairConfig
from netrepair.services.probes import parse_links

logger = logging.getLogger(__name__)

_DHCP_CLIENTS = ("dhclient", "dhcpcd", "networkctl")


# ===================================================================== #
#  Base Repair Action (ABC)                                              #
# ===================================================================== #


class BaseRepairAction(ABC):
    """Abstract base class for repair actions.

    Parameters
    ----------
    runner:
        Command runner shared with the probes.
    config:
        Repair configuration (paths, nameservers, timeouts).
    """

    category: DiagnosticCategory

    def __init__(self, runner: CommandRunner, config: RepairConfig | None = None) -> None:
        self._runner = runner
        self._config = config or RepairConfig()

    def is_available(self) -> bool:
        """False when the tools this action needs are missing."""
        return True

    def affected_paths(self) -> tuple[str, ...]:
        """Files :meth:`apply` may modify; snapshotted before it runs."""
        return ()

    @abstractmethod
    def describe(self) -> list[str]:
        """Intended changes, one line each, without touching the system."""

    @abstractmethod
    def apply(self) -> ActionResult:
        """Perform the repair.

        Returns a failed :class:`ActionResult` for an ordinary failure.
        Command errors (timeout, missing tool) are allowed to propagate.
        """

    # -- shared helpers --------------------------------------------------

    def _links(self) -> dict[str, dict[str, bool]]:
        result = self._runner.run(["ip", "-o", "link", "show"])
        if not result.ok:
            return {}
        return {n: s for n, s in parse_links(result.stdout).items() if n != "lo"}

    def _default_routes(self) -> list[str]:
        result = self._runner.run(["ip", "route", "show", "default"])
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def _has_address(self, interface: str) -> bool:
        result = self._runner.run(["ip", "-o", "-4", "addr", "show", "dev", interface])
        return result.ok and "inet " in result.stdout

    def _dhcp_clients(self) -> list[str]:
        return [name for name in _DHCP_CLIENTS if self._runner.which(name)]

    def _renew_lease(self, interface: str) -> ActionResult:
        """Renew *interface*'s lease with the first DHCP client that succeeds.

        Clients are tried in the order dhclient, dhcpcd, networkctl; a client
        that fails hands over to the next one.
        """
        clients = self._dhcp_clients()
        if not clients:
            return ActionResult(False, "No DHCP client available")

        for client in clients:
            if client == "dhclient":
                # Release errors are expected when no lease is held.
                self._runner.run(["dhclient", "-r", interface], privileged=True)
                cmd = ["dhclient", interface]
            elif client == "dhcpcd":
                cmd = ["dhcpcd", "-n", interface]
            else:
                cmd = ["networkctl", "renew", interface]
            result = self._runner.run(cmd, privileged=True)
            if result.ok:
                logger.info("Renewed DHCP lease on %s via %s", interface, client)
                return ActionResult(True, f"Renewed lease on {interface} via {client}")
            logger.warning(
                "%s could not renew %s: %s", client, interface, result.stderr.strip()
            )
        return ActionResult(
            False, f"DHCP renewal on {interface} failed ({', '.join(clients)})"
        )


def default_route_selector(route: str) -> list[str]:
    """``via``/``dev`` arguments identifying one ``ip route show default`` line."""
    selector: list[str] = []
    gateway = re.search(r"\bvia (\S+)", route)
    device = re.search(r"\bdev (\S+)", route)
    if gateway:
        selector += ["via", gateway.group(1)]
    if device:
        selector += ["dev", device.group(1)]
    return selector


# ===================================================================== #
#  Concrete actions                                                      #
# ===================================================================== #


class InterfaceRepair(BaseRepairAction):
    """Brings down interfaces up.

    Success means every down interface came up.  Afterwards the lease is
    renewed on each interface that was brought up, plus the default route's
    interface, if it has no IPv4 address; a failed renewal is logged but
    does not fail the repair, since static setups have no DHCP client.
    """

    category = DiagnosticCategory.INTERFACES

    def is_available(self) -> bool:
        return self._runner.which("ip")

    def _down(self) -> list[str]:
        return sorted(n for n, s in self._links().items() if not s["up"])

    def _primary(self) -> str | None:
        for route in self._default_routes():
            device = re.search(r"\bdev (\S+)", route)
            if device:
                return device.group(1)
        return None

    def describe(self) -> list[str]:
        plan = ["Bring up every interface that is administratively down"]
        clients = self._dhcp_clients()
        if clients:
            plan.append(
                f"Renew the DHCP lease via {clients[0]} where an interface has no address"
            )
        return plan

    def apply(self) -> ActionResult:
        down = self._down()
        for name in down:
            result = self._runner.run(["ip", "link", "set", name, "up"], privileged=True)
            if not result.ok:
                return ActionResult(
                    False, f"Could not bring up {name}: {result.stderr.strip()}"
                )
            logger.info("Brought up interface %s", name)

        candidates = list(down)
        primary = self._primary()
        if primary is not None and primary not in candidates:
            candidates.append(primary)

        notes = [f"Brought up {', '.join(down)}" if down else "No interface was down"]
        for name in candidates:
            if self._has_address(name):
                continue
            renewal = self._renew_lease(name)
            if not renewal.success:
                logger.warning("%s has no address: %s", name, renewal.detail)
            notes.append(renewal.detail)
        return ActionResult(True, "; ".join(notes))


class RoutingRepair(BaseRepairAction):
    """Keeps exactly one default route.

    With several default routes, all but the first are deleted.  With none,
    the lease is renewed on each interface with carrier until one of them
    yields a default route.
    """

    category = DiagnosticCategory.ROUTING

    def is_available(self) -> bool:
        return self._runner.which("ip")

    def _carrier_links(self) -> list[str]:
        return sorted(n for n, s in self._links().items() if s["carrier"])

    def describe(self) -> list[str]:
        plan = ["Delete duplicate default routes, keeping the first"]
        clients = self._dhcp_clients()
        if clients:
            plan.append(
                f"Renew the DHCP lease via {clients[0]} if no default route exists"
            )
        return plan

    def apply(self) -> ActionResult:
        routes = self._default_routes()
        if routes:
            return self._remove_duplicate_routes(routes)
        return self._restore_default_route()

    def _remove_duplicate_routes(self, routes: list[str]) -> ActionResult:
        if len(routes) == 1:
            return ActionResult(True, "Single default route present")
        logger.warning("Found %d default routes; keeping %s", len(routes), routes[0])
        failures = []
        for route in routes[1:]:
            cmd = ["ip", "route", "del", "default", *default_route_selector(route)]
            result = self._runner.run(cmd, privileged=True)
            if result.ok:
                logger.info("Removed duplicate default route: %s", route)
            else:
                failures.append(f"{route}: {result.stderr.strip()}")
        if failures:
            return ActionResult(
                False, f"Could not remove duplicate route(s): {'; '.join(failures)}"
            )
        return ActionResult(True, f"Removed {len(routes) - 1} duplicate default route(s)")

    def _restore_default_route(self) -> ActionResult:
        links = self._carrier_links()
        if not links:
            return ActionResult(False, "No default route and no interface with carrier")
        for name in links:
            renewal = self._renew_lease(name)
            if renewal.success and self._default_routes():
                return ActionResult(True, f"Default route restored; {renewal.detail}")
            logger.warning("No default route after renewing %s: %s", name, renewal.detail)
        return ActionResult(False, "Could not establish a default route")


def render_resolv_conf(existing: str, nameservers: tuple[str, ...]) -> str:
    """Resolver file content with *nameservers*, keeping search/options lines."""
    kept = [
        line
        for line in existing.splitlines()
        if line.strip().startswith(("search", "domain", "options"))
    ]
    lines = ["# Generated by netrepair"]
    lines.extend(f"nameserver {ns}" for ns in nameservers)
    lines.extend(kept)
    return "\n".join(lines) + "\n"


class DnsRepair(BaseRepairAction):
    category = DiagnosticCategory.DNS

    def affected_paths(self) -> tuple[str, ...]:
        return (self._config.resolv_conf_path,)

    def describe(self) -> list[str]:
        servers = ", ".join(self._config.fallback_nameservers)
        return [f"Write nameservers {servers} to {self._config.resolv_conf_path}"]

    def apply(self) -> ActionResult:
        path = Path(self._config.resolv_conf_path)
        try:
            existing = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            existing = ""
        content = render_resolv_conf(existing, self._config.fallback_nameservers)
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            return ActionResult(False, f"Could not write {path}: {exc}", (str(path),))
        logger.info("Rewrote %s", path)
        return ActionResult(
            True,
            f"Configured nameservers {', '.join(self._config.fallback_nameservers)}",
            (str(path),),
        )


class NetworkManagerRepair(BaseRepairAction):
    category = DiagnosticCategory.NETWORK_MANAGER

    def is_available(self) -> bool:
        return self._runner.which("systemctl") and self._runner.which("nmcli")

    def describe(self) -> list[str]:
        return ["Restart NetworkManager"]

    def apply(self) -> ActionResult:
        result = self._runner.run(
            ["systemctl", "restart", "NetworkManager"], privileged=True
        )
        if not result.ok:
            return ActionResult(
                False, f"NetworkManager restart failed: {result.stderr.strip()}"
            )
        return ActionResult(True, "NetworkManager restarted")


def default_actions(
    runner: CommandRunner, config: RepairConfig
) -> dict[DiagnosticCategory, BaseRepairAction]:
    """The Linux repair actions keyed by category."""
    actions: list[BaseRepairAction] = [
        InterfaceRepair(runner, config),
        RoutingRepair(runner, config),
        DnsRepair(runner, config),
        NetworkManagerRepair(runner, config),
    ]
    return {a.category: a for a in actions}
