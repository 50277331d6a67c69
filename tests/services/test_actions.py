"""Tests for the concrete repair actions."""

from __future__ import annotations

from pathlib import Path

from netrepair.domain.enums import DiagnosticCategory
from netrepair.infrastructure.config import RepairConfig
from netrepair.services.actions import (
    DnsRepair,
    InterfaceRepair,
    NetworkManagerRepair,
    RoutingRepair,
    default_actions,
    default_route_selector,
    render_resolv_conf,
)
from tests.helpers.fakes import FakeRunner, failed, ok

IP_LINK = ("ip", "-o", "link", "show")
IP_ROUTE = ("ip", "route", "show", "default")
LINKS = (
    "2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500\n"
    "3: eth1: <BROADCAST,MULTICAST> mtu 1500\n"
)


# ===================================================================== #
#  DNS                                                                   #
# ===================================================================== #


class TestRenderResolvConf:
    def test_keeps_search_and_options(self) -> None:
        existing = "# old\nsearch lan\nnameserver 10.0.0.53\noptions edns0\n"
        content = render_resolv_conf(existing, ("1.1.1.1", "8.8.8.8"))
        assert content == (
            "# Generated by netrepair\n"
            "nameserver 1.1.1.1\n"
            "nameserver 8.8.8.8\n"
            "search lan\n"
            "options edns0\n"
        )

    def test_empty_existing(self) -> None:
        assert render_resolv_conf("", ("9.9.9.9",)).endswith("nameserver 9.9.9.9\n")


class TestDnsRepair:
    def _action(self, path: Path) -> DnsRepair:
        config = RepairConfig(resolv_conf_path=str(path), fallback_nameservers=("1.1.1.1",))
        return DnsRepair(FakeRunner(), config)

    def test_declares_resolver_file(self, resolv_conf: Path) -> None:
        assert self._action(resolv_conf).affected_paths() == (str(resolv_conf),)

    def test_describe_is_side_effect_free(self, resolv_conf: Path) -> None:
        before = resolv_conf.read_bytes()
        plan = self._action(resolv_conf).describe()
        assert plan == [f"Write nameservers 1.1.1.1 to {resolv_conf}"]
        assert resolv_conf.read_bytes() == before

    def test_apply_rewrites_file(self, resolv_conf: Path) -> None:
        result = self._action(resolv_conf).apply()
        assert result.success
        text = resolv_conf.read_text(encoding="utf-8")
        assert "nameserver 1.1.1.1" in text
        assert "10.0.0.53" not in text
        assert "search lan" in text

    def test_apply_creates_missing_file(self, tmp_path: Path) -> None:
        path = tmp_path / "resolv.conf"
        assert self._action(path).apply().success
        assert path.exists()

    def test_unwritable_target_fails(self, tmp_path: Path) -> None:
        result = self._action(tmp_path / "missing-dir" / "resolv.conf").apply()
        assert not result.success


# ===================================================================== #
#  Interfaces and routing                                                #
# ===================================================================== #


def _addr(name: str) -> tuple[str, ...]:
    return ("ip", "-o", "-4", "addr", "show", "dev", name)


def _dhcp_commands(runner: FakeRunner) -> list[tuple[str, ...]]:
    return [c for c in runner.commands if c[0] in ("dhclient", "dhcpcd", "networkctl")]


class TestInterfaceRepair:
    def test_brings_down_links_up_and_renews(self) -> None:
        runner = FakeRunner({IP_LINK: ok(IP_LINK, LINKS)}, available=["ip", "dhclient"])
        result = InterfaceRepair(runner).apply()
        assert result.success
        assert (("ip", "link", "set", "eth1", "up"), True) in runner.calls
        assert _dhcp_commands(runner) == [("dhclient", "-r", "eth1"), ("dhclient", "eth1")]

    def test_link_failure_stops(self) -> None:
        cmd = ("ip", "link", "set", "eth1", "up")
        runner = FakeRunner(
            {IP_LINK: ok(IP_LINK, LINKS), cmd: failed(cmd, "RTNETLINK answers")},
            available=["ip", "dhclient"],
        )
        result = InterfaceRepair(runner).apply()
        assert not result.success
        assert "eth1" in result.detail
        assert _dhcp_commands(runner) == []

    def test_bring_up_succeeds_without_dhcp_client(self) -> None:
        runner = FakeRunner({IP_LINK: ok(IP_LINK, LINKS)}, available=["ip"])
        result = InterfaceRepair(runner).apply()
        assert result.success
        assert ("ip", "link", "set", "eth1", "up") in runner.commands
        assert "No DHCP client available" in result.detail

    def test_nothing_down_touches_no_lease(self) -> None:
        all_up = "2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500\n"
        runner = FakeRunner({IP_LINK: ok(IP_LINK, all_up)}, available=["ip", "dhclient"])
        result = InterfaceRepair(runner).apply()
        assert result.success
        assert result.detail == "No interface was down"
        assert _dhcp_commands(runner) == []

    def test_addressed_interface_keeps_its_lease(self) -> None:
        addr = _addr("eth1")
        runner = FakeRunner(
            {
                IP_LINK: ok(IP_LINK, LINKS),
                addr: ok(addr, "3: eth1    inet 192.168.1.20/24 brd 192.168.1.255"),
            },
            available=["ip", "dhclient"],
        )
        assert InterfaceRepair(runner).apply().success
        assert _dhcp_commands(runner) == []

    def test_primary_without_address_is_renewed(self) -> None:
        all_up = "2: eth0: <BROADCAST,MULTICAST,UP,LOWER_UP> mtu 1500\n"
        runner = FakeRunner(
            {
                IP_LINK: ok(IP_LINK, all_up),
                IP_ROUTE: ok(IP_ROUTE, "default via 10.0.0.1 dev eth0 proto dhcp\n"),
            },
            available=["ip", "dhcpcd"],
        )
        assert InterfaceRepair(runner).apply().success
        assert _dhcp_commands(runner) == [("dhcpcd", "-n", "eth0")]

    def test_falls_back_to_next_dhcp_client(self) -> None:
        dhclient = ("dhclient", "eth1")
        runner = FakeRunner(
            {IP_LINK: ok(IP_LINK, LINKS), dhclient: failed(dhclient, "no lease")},
            available=["ip", "dhclient", "dhcpcd", "networkctl"],
        )
        result = InterfaceRepair(runner).apply()
        assert result.success
        assert _dhcp_commands(runner) == [
            ("dhclient", "-r", "eth1"),
            ("dhclient", "eth1"),
            ("dhcpcd", "-n", "eth1"),
        ]
        assert "via dhcpcd" in result.detail

    def test_describe_runs_no_commands(self) -> None:
        runner = FakeRunner(available=["ip", "dhcpcd"])
        plan = InterfaceRepair(runner).describe()
        assert "via dhcpcd" in plan[-1]
        assert runner.calls == []

    def test_availability(self) -> None:
        assert not InterfaceRepair(FakeRunner()).is_available()


class TestDefaultRouteSelector:
    def test_gateway_and_device(self) -> None:
        route = "default via 10.0.0.1 dev eth0 proto dhcp metric 100"
        assert default_route_selector(route) == ["via", "10.0.0.1", "dev", "eth0"]

    def test_device_only(self) -> None:
        assert default_route_selector("default dev wg0 scope link") == ["dev", "wg0"]


class TestRoutingRepair:
    DUPLICATES = (
        "default via 10.0.0.1 dev eth0 proto dhcp metric 100\n"
        "default via 192.168.1.1 dev wlan0 proto dhcp metric 600\n"
    )

    def test_unavailable_without_ip(self) -> None:
        assert not RoutingRepair(FakeRunner()).is_available()
        assert RoutingRepair(FakeRunner(available=["ip"])).is_available()

    def test_removes_duplicate_default_routes(self) -> None:
        runner = FakeRunner(
            {IP_ROUTE: ok(IP_ROUTE, self.DUPLICATES)}, available=["ip", "dhclient"]
        )
        result = RoutingRepair(runner).apply()
        assert result.success
        assert "Removed 1 duplicate" in result.detail
        assert (
            ("ip", "route", "del", "default", "via", "192.168.1.1", "dev", "wlan0"),
            True,
        ) in runner.calls
        assert not any(c[:3] == ("ip", "route", "del") and "eth0" in c for c in runner.commands)
        assert _dhcp_commands(runner) == []

    def test_duplicate_removal_failure(self) -> None:
        delete = ("ip", "route", "del", "default", "via", "192.168.1.1", "dev", "wlan0")
        runner = FakeRunner(
            {IP_ROUTE: ok(IP_ROUTE, self.DUPLICATES), delete: failed(delete, "No such process")},
            available=["ip"],
        )
        result = RoutingRepair(runner).apply()
        assert not result.success
        assert "No such process" in result.detail

    def test_single_route_left_alone(self) -> None:
        runner = FakeRunner(
            {IP_ROUTE: ok(IP_ROUTE, "default via 10.0.0.1 dev eth0\n")}, available=["ip"]
        )
        assert RoutingRepair(runner).apply().success
        assert not any(c[:3] == ("ip", "route", "del") for c in runner.commands)

    def test_renews_on_carrier_links_when_no_route(self) -> None:
        runner = FakeRunner(
            {
                IP_LINK: ok(IP_LINK, LINKS),
                IP_ROUTE: [ok(IP_ROUTE), ok(IP_ROUTE, "default via 10.0.0.1 dev eth0\n")],
            },
            available=["ip", "networkctl"],
        )
        result = RoutingRepair(runner).apply()
        assert result.success
        assert (("networkctl", "renew", "eth0"), True) in runner.calls
        assert "Default route restored" in result.detail

    def test_renewal_without_route_fails(self) -> None:
        runner = FakeRunner({IP_LINK: ok(IP_LINK, LINKS)}, available=["ip", "dhcpcd"])
        result = RoutingRepair(runner).apply()
        assert not result.success
        assert ("dhcpcd", "-n", "eth0") in runner.commands

    def test_no_carrier(self) -> None:
        runner = FakeRunner(available=["ip", "dhclient"])
        result = RoutingRepair(runner).apply()
        assert not result.success
        assert _dhcp_commands(runner) == []


# ===================================================================== #
#  NetworkManager                                                        #
# ===================================================================== #


class TestNetworkManagerRepair:
    CMD = ("systemctl", "restart", "NetworkManager")

    def test_restart(self) -> None:
        runner = FakeRunner(available=["systemctl", "nmcli"])
        action = NetworkManagerRepair(runner)
        assert action.is_available()
        assert action.apply().success
        assert runner.calls == [(self.CMD, True)]

    def test_restart_failure(self) -> None:
        runner = FakeRunner({self.CMD: failed(self.CMD, "unit not found")})
        result = NetworkManagerRepair(runner).apply()
        assert not result.success
        assert "unit not found" in result.detail

    def test_unavailable_without_nmcli(self) -> None:
        assert not NetworkManagerRepair(FakeRunner(available=["systemctl"])).is_available()


def test_default_actions_keyed_by_category() -> None:
    actions = default_actions(FakeRunner(), RepairConfig())
    assert set(actions) == {
        DiagnosticCategory.INTERFACES,
        DiagnosticCategory.ROUTING,
        DiagnosticCategory.DNS,
        DiagnosticCategory.NETWORK_MANAGER,
    }
    assert all(a.category == c for c, a in actions.items())
