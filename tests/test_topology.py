import pytest

from pm2monitor.join import FilterSpec
from pm2monitor.topology import (
    TopologyMapping,
    TopologyResolver,
    build_topology,
    filter_pool_routes,
    parse_pool_routes,
    parse_upstreams,
)

from conftest import SAMPLE_NGINX


def test_parse_upstreams_takes_first_loopback_binding():
    assert parse_upstreams(SAMPLE_NGINX) == {"web": "3000", "api": "4001", "billing": "5000"}


def test_parse_upstreams_skips_blocks_without_loopback():
    text = "upstream remote { server 10.0.0.5:8080; }\nupstream local { server 127.0.0.1:9000; }"
    assert parse_upstreams(text) == {"local": "9000"}


def test_parse_pool_routes_keeps_order_and_optional_quotes():
    routes = parse_pool_routes(SAMPLE_NGINX)
    assert routes == {
        "api": ["/v1/*", "/v2/*"],
        "billing": ["/billing/*"],
        "archive": ["/legacy/*"],
    }


def test_parse_pool_routes_without_map_block():
    assert parse_pool_routes("upstream web { server 127.0.0.1:3000; }") == {}


def test_config_without_blocks_resolves_nothing():
    topology = build_topology("server { listen 80; }")
    assert len(topology) == 0
    assert topology.paths_for_port("3000") == ("N/A",)
    assert topology.paths_for_port(4001) == ("N/A",)
    assert topology.main_port() is None


def test_single_route():
    text = 'upstream api { server 127.0.0.1:4001; }\nmap $http_servicepath $pool {\n  /v1/* "api";\n}'
    assert build_topology(text).paths_for_port("4001") == ("/v1/*",)


def test_pool_without_route_is_main():
    topology = build_topology(SAMPLE_NGINX)
    assert topology.paths_for_port("3000") == ("Main",)
    assert topology.main_port() == "3000"
    assert topology.paths_for_port("4001") == ("/v1/*", "/v2/*")


def test_orphaned_pool_is_dropped():
    topology = build_topology(SAMPLE_NGINX)
    assert set(topology.ports) == {"3000", "4001", "5000"}
    assert "/legacy/*" not in [path for port in topology.ports for path in topology.paths_for_port(port)]


def test_main_port_first_match_wins():
    text = "upstream a { server 127.0.0.1:1111; }\nupstream b { server 127.0.0.1:2222; }"
    assert build_topology(text).main_port() == "1111"


def test_mapping_is_read_only():
    topology = build_topology(SAMPLE_NGINX)
    with pytest.raises(TypeError):
        topology.pool_routes["new"] = ("/x",)


def test_resolver_returns_cached_instance_for_same_text():
    resolver = TopologyResolver(path="/nonexistent")
    first = resolver.resolve(SAMPLE_NGINX)
    assert resolver.resolve(SAMPLE_NGINX) is first
    assert resolver.resolve("upstream x { server 127.0.0.1:1; }") is not first


def test_resolver_load_missing_file_gives_empty_topology(tmp_path):
    resolver = TopologyResolver(path=tmp_path / "missing.conf")
    topology = resolver.load()
    assert topology is TopologyMapping.EMPTY
    assert topology.paths_for_port("3000") == ("N/A",)


def test_resolver_load_reads_file_once(tmp_path):
    conf = tmp_path / "default"
    conf.write_text(SAMPLE_NGINX, encoding="utf-8")
    resolver = TopologyResolver(path=conf)

    first = resolver.load()
    conf.write_text("", encoding="utf-8")
    assert resolver.load() is first
    assert first.main_port() == "3000"


def test_filter_pool_routes_by_pool_or_path():
    routes = build_topology(SAMPLE_NGINX).pool_routes
    assert filter_pool_routes(routes, FilterSpec.parse("API")) == {"api": ("/v1/*", "/v2/*")}
    assert filter_pool_routes(routes, FilterSpec.parse("/v2/*,billing")) == {
        "api": ("/v2/*",),
        "billing": ("/billing/*",),
    }
    assert filter_pool_routes(routes, FilterSpec.parse("nothing")) == {}
    assert filter_pool_routes(routes, FilterSpec.parse("all")) == dict(routes)
