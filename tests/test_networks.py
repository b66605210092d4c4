import logging
import pytest
import sys
import os

# Add scripts directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'scripts'))

from pve_provision.errors import ConfigurationError
from pve_provision.models import ForwardedPort, LxcSettings, MachineSpec, PublicNetwork
from pve_provision.networks import (
    build_network_entry,
    interface_name,
    merge_network,
    merge_network_defaults,
    network_params,
)


def lxc_spec(**kwargs):
    return MachineSpec(machine_name='web', backend=LxcSettings(os_template='local:vztmpl/debian.tar.zst'), **kwargs)


class TestBuildNetworkEntry:

    def test_minimal_static_ipv4(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', ip='10.0.0.5', ip_cidr=24)

        assert build_network_entry(network) == 'name=eth0,bridge=vmbr0,ip=10.0.0.5/24,type=veth'

    def test_clause_order(self):
        network = PublicNetwork(
            net_id='net1', interface='lan', bridge='vmbr1', firewall=True,
            gw='10.0.0.1', gw6='2001:db8::1', hwaddr='AA:BB:CC:DD:EE:FF',
            ip='10.0.0.5', ip_cidr=24, ip6='2001:db8::5', ip6_cidr=64,
            mtu=1500, rate=50, tag=10, trunks=[10, 20],
        )

        assert build_network_entry(network) == (
            'name=lan,bridge=vmbr1,firewall=1,gw=10.0.0.1,gw6=2001:db8::1,'
            'hwaddr=AA:BB:CC:DD:EE:FF,ip=10.0.0.5/24,ip6=2001:db8::5/64,'
            'mtu=1500,rate=50,tag=10,trunks=10;20,type=veth'
        )

    def test_firewall_disabled_is_rendered_as_zero(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', firewall=False, type='dhcp')

        assert build_network_entry(network) == 'name=eth0,bridge=vmbr0,firewall=0,ip=dhcp,type=veth'

    def test_macaddress_alias(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', macaddress='AA:BB:CC:DD:EE:FF', type='dhcp')

        assert 'hwaddr=AA:BB:CC:DD:EE:FF' in build_network_entry(network)

    def test_empty_optional_fields_skipped(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', gw='', trunks='', type='dhcp')

        assert build_network_entry(network) == 'name=eth0,bridge=vmbr0,ip=dhcp,type=veth'

    def test_dhcp_by_type(self):
        network = PublicNetwork(net_id='net2', bridge='vmbr0', type='dhcp')

        assert build_network_entry(network) == 'name=eth2,bridge=vmbr0,ip=dhcp,type=veth'

    def test_dhcp_by_ip(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', ip='dhcp', ip6='dhcp')

        assert build_network_entry(network) == 'name=eth0,bridge=vmbr0,ip=dhcp,ip6=dhcp,type=veth'

    def test_ipv6_only(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', ip6='2001:db8::5', ip6_cidr=64)

        assert build_network_entry(network) == 'name=eth0,bridge=vmbr0,ip6=2001:db8::5/64,type=veth'

    def test_dhcp_wins_over_static_address(self, caplog):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', type='dhcp', ip='10.0.0.5', ip_cidr=24)

        with caplog.at_level(logging.WARNING):
            entry = build_network_entry(network)

        assert entry == 'name=eth0,bridge=vmbr0,ip=dhcp,type=veth'
        assert 'ignoring static address 10.0.0.5/24' in caplog.text

    def test_missing_net_id(self):
        network = PublicNetwork(bridge='vmbr0', type='dhcp')

        with pytest.raises(ConfigurationError, match="has no 'net_id' element"):
            build_network_entry(network)

    def test_empty_bridge(self):
        network = PublicNetwork(net_id='net0', bridge='', type='dhcp')

        with pytest.raises(ConfigurationError, match="has empty 'bridge' element"):
            build_network_entry(network)

    def test_interface_name_required(self):
        network = PublicNetwork(net_id='lan0', bridge='vmbr0', type='dhcp')

        with pytest.raises(ConfigurationError, match="has no 'interface' element"):
            build_network_entry(network)

    def test_no_ip_address(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr0', ip='10.0.0.5')

        with pytest.raises(ConfigurationError, match="You need to set an IP-Address"):
            build_network_entry(network)


class TestInterfaceName:

    def test_declared_interface_wins(self):
        assert interface_name(PublicNetwork(net_id='net3', interface='ens18')) == 'ens18'

    def test_derived_from_slot(self):
        assert interface_name(PublicNetwork(net_id='net3')) == 'eth3'

    def test_not_derivable(self):
        assert interface_name(PublicNetwork(net_id='public')) is None
        assert interface_name(PublicNetwork()) is None


class TestMergeDefaults:

    def test_declared_values_win(self):
        network = PublicNetwork(net_id='net0', bridge='vmbr1')
        default = PublicNetwork(bridge='vmbr0', gw='10.0.0.1', type='dhcp')

        merged = merge_network(network, default)

        assert merged.bridge == 'vmbr1'
        assert merged.gw == '10.0.0.1'
        assert merged.type == 'dhcp'
        assert merged.net_id == 'net0'

    def test_positional_merge_only_on_same_kind(self):
        networks = [
            ForwardedPort(guest=22, host=2222),
            PublicNetwork(net_id='net0', ip='10.0.0.5'),
        ]
        defaults = [
            PublicNetwork(bridge='vmbr9', type='dhcp'),
            PublicNetwork(bridge='vmbr0', ip_cidr=24),
        ]

        merged = merge_network_defaults(networks, defaults)

        assert merged[0] is networks[0]
        assert merged[1].bridge == 'vmbr0'
        assert merged[1].ip_cidr == 24
        assert merged[1].ip == '10.0.0.5'

    def test_inputs_not_mutated(self):
        networks = [PublicNetwork(net_id='net0')]
        defaults = [PublicNetwork(bridge='vmbr0', type='dhcp')]

        merged = merge_network_defaults(networks, defaults)

        assert merged is not networks
        assert networks[0].bridge is None
        assert merged[0].bridge == 'vmbr0'

    def test_more_networks_than_defaults(self):
        networks = [PublicNetwork(net_id='net0'), PublicNetwork(net_id='net1', bridge='vmbr1')]
        defaults = [PublicNetwork(bridge='vmbr0')]

        merged = merge_network_defaults(networks, defaults)

        assert [n.bridge for n in merged] == ['vmbr0', 'vmbr1']


class TestNetworkParams:

    def test_single_public_network(self):
        spec = lxc_spec(networks=[PublicNetwork(net_id='net0', bridge='vmbr0', ip='10.0.0.5', ip_cidr=24)])

        assert network_params(spec) == {'net0': 'name=eth0,bridge=vmbr0,ip=10.0.0.5/24,type=veth'}

    def test_forwarded_ports_skipped(self):
        spec = lxc_spec(networks=[
            ForwardedPort(guest=22, host=2222),
            PublicNetwork(net_id='net0', bridge='vmbr0', type='dhcp'),
            PublicNetwork(net_id='net1', bridge='vmbr1', ip='192.168.1.2', ip_cidr=24),
        ])

        params = network_params(spec)

        assert list(params) == ['net0', 'net1']
        assert params['net1'] == 'name=eth1,bridge=vmbr1,ip=192.168.1.2/24,type=veth'

    def test_no_public_network(self):
        spec = lxc_spec(networks=[ForwardedPort(guest=22, host=2222)])

        with pytest.raises(ConfigurationError, match="no public_network"):
            network_params(spec)

    def test_no_networks_at_all(self):
        with pytest.raises(ConfigurationError, match="no public_network"):
            network_params(lxc_spec())

    def test_defaults_applied_when_enabled(self):
        spec = lxc_spec(
            networks=[PublicNetwork(net_id='net0', ip='10.0.0.5')],
            use_network_defaults=True,
            network_defaults=[PublicNetwork(bridge='vmbr0', ip_cidr=24)],
        )

        assert network_params(spec) == {'net0': 'name=eth0,bridge=vmbr0,ip=10.0.0.5/24,type=veth'}

    def test_defaults_ignored_when_disabled(self):
        spec = lxc_spec(
            networks=[PublicNetwork(net_id='net0', ip='10.0.0.5')],
            network_defaults=[PublicNetwork(bridge='vmbr0', ip_cidr=24)],
        )

        with pytest.raises(ConfigurationError, match="has no 'bridge' element"):
            network_params(spec)

    def test_dry_run_logs_ignored_forwarded_ports(self, caplog):
        spec = lxc_spec(dry=True, networks=[
            ForwardedPort(guest=80, host=8080),
            PublicNetwork(net_id='net0', bridge='vmbr0', type='dhcp'),
        ])

        with caplog.at_level(logging.INFO):
            network_params(spec)

        assert 'Network setup ignored' in caplog.text
