"""
Tests for the novelty resolver: pending versions, filtering, ordering and
link resolution.
"""

from decimal import Decimal

import pytest

from features.newfeatures.hosts import VirtualServerHost
from features.newfeatures.ladder import UnknownModuleError
from features.newfeatures.models import FeatureDescriptor, ModuleVersionInfo, ViewerRole, VirtualDomain
from features.newfeatures.resolver import NoveltyResolver
from tests.conftest import CORE, PLUGIN, D, write_feature


class RecordingStore:
    """In-memory feature store that remembers what was asked for."""

    def __init__(self, features: dict):
        self.features = features
        self.calls = []

    def list_features(self, module, version):
        self.calls.append((module, version))
        return list(self.features.get((module, version), []))


def feature(fid, module=CORE, version="1.03", roles=("master", "reseller", "domain"), **kw):
    return FeatureDescriptor(
        id=fid, module=module, version=D(version), desc=f"Feature {fid}",
        visibility=frozenset(ViewerRole(r) for r in roles), **kw,
    )


def core(version, first_version=None):
    return ModuleVersionInfo(CORE, D(version), D(first_version) if first_version else None)


def plugin(version):
    return ModuleVersionInfo(PLUGIN, D(version))


# ── pending_notifications ─────────────────────────────────────────────

def test_pending_newest_first_down_to_acknowledged(resolver, ledger):
    ledger.acknowledge("alice", CORE, D("1.00"))

    pending = resolver.pending_notifications("alice", [core("1.03")])

    assert pending == [(CORE, D("1.03")), (CORE, D("1.02")), (CORE, D("1.01"))]


def test_pending_never_acknowledged_runs_to_zero(resolver):
    pending = resolver.pending_notifications("alice", [core("0.03"), plugin("0.2")])

    assert pending == [
        (CORE, D("0.03")), (CORE, D("0.02")), (CORE, D("0.01")),
        (PLUGIN, D("0.2")), (PLUGIN, D("0.1")),
    ]


def test_pending_respects_first_version(resolver):
    pending = resolver.pending_notifications("alice", [core("1.03", first_version="1.02")])

    assert pending == [(CORE, D("1.03")), (CORE, D("1.02"))]
    assert (CORE, D("1.01")) not in pending


def test_pending_keeps_module_order(resolver, ledger):
    ledger.acknowledge("alice", CORE, D("7.19"))
    ledger.acknowledge("alice", PLUGIN, D("3.3"))

    pending = resolver.pending_notifications("alice", [plugin("3.4"), core("7.20")])

    assert pending == [(PLUGIN, D("3.4")), (CORE, D("7.20"))]


def test_pending_empty_when_up_to_date(resolver, ledger):
    ledger.acknowledge("alice", CORE, D("7.20"))

    assert resolver.pending_notifications("alice", [core("7.20")]) == []
    assert resolver.pending_notifications("alice", []) == []


def test_pending_is_finite_for_large_versions(resolver):
    pending = resolver.pending_notifications("alice", [core("12.00")])

    assert len(pending) == 1200
    assert pending[-1] == (CORE, D("0.01"))


def test_pending_unknown_module_fails(resolver):
    with pytest.raises(UnknownModuleError):
        resolver.pending_notifications("alice", [ModuleVersionInfo("mystery", D("1.0"))])


# ── renderable_features ───────────────────────────────────────────────

def make_resolver(features, ledger, ladder, **kw):
    kw.setdefault("allowed_roles", ["master", "reseller", "domain"])
    store = RecordingStore(features)
    return NoveltyResolver(store, ledger, ladder, **kw), store


def test_role_filtering(ledger, ladder):
    owner_only = feature("1", roles=("domain",))
    r, _ = make_resolver({(CORE, D("1.03")): [owner_only]}, ledger, ladder)
    modules = [core("1.03", first_version="1.03")]

    assert r.renderable_features("alice", modules, ViewerRole.PRIMARY_ADMIN, None) == []
    assert r.renderable_features("alice", modules, ViewerRole.TENANT_OWNER, None) == [owner_only]


def test_unknown_role_skips_role_filter(ledger, ladder):
    owner_only = feature("1", roles=("domain",))
    r, _ = make_resolver({(CORE, D("1.03")): [owner_only]}, ledger, ladder)

    assert r.renderable_features("alice", [core("1.03", "1.03")], None, None) == [owner_only]


def test_host_version_filtering(ledger, ladder):
    old_enough = feature("2", min_host_version=D("2.000"))
    too_new = feature("1", min_host_version=D("2.200"))
    r, _ = make_resolver({(CORE, D("1.03")): [old_enough, too_new]}, ledger, ladder)

    result = r.renderable_features("alice", [core("1.03", "1.03")], ViewerRole.PRIMARY_ADMIN, D("2.100"))

    assert result == [old_enough]


def test_empty_version_stops_descent_for_that_module(ledger, ladder):
    r, store = make_resolver({
        (CORE, D("1.03")): [feature("1")],
        (CORE, D("1.01")): [feature("9", version="1.01")],
        (PLUGIN, D("0.2")): [feature("5", module=PLUGIN, version="0.2")],
    }, ledger, ladder)
    ledger.acknowledge("alice", CORE, D("1.00"))

    result = r.renderable_features("alice", [core("1.03"), plugin("0.2")], ViewerRole.PRIMARY_ADMIN, None)

    assert (CORE, D("1.02")) in store.calls
    assert (CORE, D("1.01")) not in store.calls
    assert (PLUGIN, D("0.2")) in store.calls
    assert [f.id for f in result] == ["5", "1"]


def test_filtered_out_version_does_not_stop_descent(ledger, ladder):
    r, store = make_resolver({
        (CORE, D("1.02")): [feature("2", version="1.02", roles=("domain",))],
        (CORE, D("1.01")): [feature("1", version="1.01")],
    }, ledger, ladder)
    ledger.acknowledge("alice", CORE, D("1.00"))

    result = r.renderable_features("alice", [core("1.02")], ViewerRole.PRIMARY_ADMIN, None)

    assert (CORE, D("1.01")) in store.calls
    assert [f.id for f in result] == ["1"]


def test_whole_list_is_reversed(ledger, ladder):
    r, _ = make_resolver({
        (CORE, D("1.03")): [feature("2"), feature("1")],
        (CORE, D("1.02")): [feature("5", version="1.02")],
        (PLUGIN, D("0.1")): [feature("7", module=PLUGIN, version="0.1")],
    }, ledger, ladder)
    ledger.acknowledge("alice", CORE, D("1.01"))

    result = r.renderable_features("alice", [core("1.03"), plugin("0.1")], ViewerRole.PRIMARY_ADMIN, None)

    # Pending order is core 1.03 [2, 1], core 1.02 [5], plugin 0.1 [7]
    assert [f.id for f in result] == ["7", "5", "1", "2"]


def test_no_modules_gives_nothing(resolver):
    assert resolver.renderable_features("alice", [], ViewerRole.PRIMARY_ADMIN, D("2.0")) == []


def test_role_not_in_allowlist_gives_nothing(ledger, ladder):
    r, store = make_resolver({(CORE, D("1.03")): [feature("1")]}, ledger, ladder,
                             allowed_roles=["master"])

    assert r.renderable_features("alice", [core("1.03", "1.03")], ViewerRole.RESELLER_ADMIN, None) == []
    assert store.calls == []
    assert r.renderable_features("alice", [core("1.03", "1.03")], ViewerRole.PRIMARY_ADMIN, None) != []


def test_everything_filtered_out_gives_nothing(ledger, ladder):
    r, _ = make_resolver({(CORE, D("1.03")): [feature("1", roles=("master",))]}, ledger, ladder)

    assert r.renderable_features("alice", [core("1.03", "1.03")], ViewerRole.TENANT_OWNER, None) == []


def test_reads_real_store(resolver, ledger, core_dir, plugin_dir):
    write_feature(core_dir, "7.20", "2", desc="New DNS", master=1)
    write_feature(core_dir, "7.20", "1", desc="New mail", master=1)
    write_feature(plugin_dir, "3.4", "1", desc="Proxies", master=1)
    ledger.acknowledge("alice", CORE, D("7.19"))
    ledger.acknowledge("alice", PLUGIN, D("3.3"))

    result = resolver.renderable_features(
        "alice", [core("7.20"), plugin("3.4")], ViewerRole.PRIMARY_ADMIN, D("2.0"),
    )

    assert [(f.module, f.id) for f in result] == [(PLUGIN, "1"), (CORE, "1"), (CORE, "2")]


# ── links ─────────────────────────────────────────────────────────────

def test_links_are_resolved_against_target(ledger, ladder):
    feats = [
        feature("3", link="edit_domain.cgi?dom=${ID}"),
        feature("2", link="https://example.com/docs"),
        feature("1", link="/mail/"),
        feature("0"),
    ]
    r, _ = make_resolver({(CORE, D("1.03")): feats}, ledger, ladder, webprefix="/panel")
    host = VirtualServerHost("alice", is_master=True,
                             domains=[VirtualDomain(id="123", dom="example.com")])

    result = r.renderable_features("alice", [core("1.03", "1.03")], None, None, host=host)
    links = {f.id: f.resolved_link for f in result}

    assert links == {
        "3": "/panel/virtual-server/edit_domain.cgi?dom=123",
        "2": "https://example.com/docs",
        "1": "/mail/",
        "0": None,
    }


def test_placeholder_link_without_target_is_dropped(ledger, ladder):
    r, _ = make_resolver({(CORE, D("1.03")): [feature("1", link="edit.cgi?dom=${ID}"),
                                             feature("0", link="list.cgi")]}, ledger, ladder)
    host = VirtualServerHost("bob", domains=[])

    result = r.renderable_features("bob", [core("1.03", "1.03")], None, None, host=host)

    assert {f.id: f.resolved_link for f in result} == {"1": None, "0": "/virtual-server/list.cgi"}


def test_explicit_target_wins_over_default(ledger, ladder):
    r, _ = make_resolver({(CORE, D("1.03")): [feature("1", link="edit.cgi?dom=${DOM}")]}, ledger, ladder)
    first, second = VirtualDomain(id="1", dom="a.com"), VirtualDomain(id="2", dom="b.com")
    host = VirtualServerHost("alice", is_master=True, domains=[first, second])

    (f,) = r.renderable_features("alice", [core("1.03", "1.03")], None, None, target=second, host=host)

    assert f.resolved_link == "/virtual-server/edit.cgi?dom=b.com"


# ── acknowledge_all ───────────────────────────────────────────────────

def test_acknowledge_all_clears_pending(resolver):
    modules = [core("7.20"), plugin("3.4")]

    resolver.acknowledge_all("alice", modules)

    assert resolver.pending_notifications("alice", modules) == []
    assert resolver.ledger.get_acknowledged("alice") == {CORE: D("7.20"), PLUGIN: D("3.4")}


def test_versions_are_exact_decimals(resolver):
    pending = resolver.pending_notifications("alice", [core("0.30", first_version="0.01")])

    assert all(isinstance(v, Decimal) for _, v in pending)
    assert [str(v) for _, v in pending[:3]] == ["0.30", "0.29", "0.28"]


def test_pending_with_float_module_version(resolver, ledger):
    info = ModuleVersionInfo(CORE, 1.03)
    ledger.acknowledge("alice", CORE, D("1.00"))

    assert isinstance(info.version, Decimal)
    assert resolver.pending_notifications("alice", [info]) == [
        (CORE, D("1.03")), (CORE, D("1.02")), (CORE, D("1.01")),
    ]
