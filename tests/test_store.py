"""
Tests for the feature store reader.
"""

from features.newfeatures.models import ViewerRole
from features.newfeatures.store import FeatureStore, id_sort_key
from tests.conftest import CORE, PLUGIN, D, write_feature


def test_missing_version_directory_is_empty(store):
    assert store.list_features(CORE, D("7.20")) == []
    assert store.list_features(PLUGIN, D("3.4")) == []


def test_features_sorted_newest_id_first(store, core_dir):
    write_feature(core_dir, "7.20", "005_backup", desc="Backups")
    write_feature(core_dir, "7.20", "010_dns", desc="DNS")
    write_feature(core_dir, "7.20", "002_mail", desc="Mail")

    features = store.list_features(CORE, D("7.20"))

    assert [f.id for f in features] == ["010_dns", "005_backup", "002_mail"]
    assert {f.module for f in features} == {CORE}
    assert {f.version for f in features} == {D("7.20")}


def test_ties_keep_discovery_order(store, core_dir):
    write_feature(core_dir, "7.20", "b", desc="B")
    write_feature(core_dir, "7.20", "a", desc="A")
    write_feature(core_dir, "7.20", "1", desc="One")

    features = store.list_features(CORE, D("7.20"))

    assert [f.id for f in features] == ["1", "a", "b"]


def test_hidden_entries_are_skipped(store, core_dir):
    write_feature(core_dir, "7.20", "1", desc="Visible")
    write_feature(core_dir, "7.20", ".2", desc="Hidden")

    assert [f.id for f in store.list_features(CORE, D("7.20"))] == ["1"]


def test_descriptor_fields(store, plugin_dir):
    write_feature(
        plugin_dir, "3.4", "1",
        desc="Nginx proxies", html="<b>Proxy</b> paths", master=1, domain=1,
        webmin="2.100", link="edit_proxy.cgi?dom=${ID}", managers="virtualmin cloudmin",
    )

    (f,) = store.list_features(PLUGIN, D("3.4"))

    assert f.desc == "Nginx proxies"
    assert f.html == "<b>Proxy</b> paths"
    assert f.visibility == frozenset({ViewerRole.PRIMARY_ADMIN, ViewerRole.TENANT_OWNER})
    assert f.min_host_version == D("2.100")
    assert f.link == "edit_proxy.cgi?dom=${ID}"
    assert f.managers == ("virtualmin", "cloudmin")
    assert f.module == PLUGIN
    assert f.resolved_link is None


def test_owner_flag_means_tenant_owner(store, core_dir):
    write_feature(core_dir, "7.20", "1", desc="X", owner=1, reseller=0)

    (f,) = store.list_features(CORE, D("7.20"))

    assert f.visibility == frozenset({ViewerRole.TENANT_OWNER})


def test_malformed_entries_are_skipped(store, core_dir):
    write_feature(core_dir, "7.20", "1", desc="Good")
    write_feature(core_dir, "7.20", "2", desc="Bad minimum", webmin="soon")
    (core_dir / "7.20" / "3").mkdir()
    (core_dir / "7.20" / "4").write_bytes(b"desc=\xff\xfe\n")

    assert [f.id for f in store.list_features(CORE, D("7.20"))] == ["1"]


def test_core_aggregates_all_search_directories(tmp_path, modules_root):
    first, second = tmp_path / "nf1", tmp_path / "nf2"
    write_feature(first, "7.20", "1", desc="From first")
    write_feature(second, "7.20", "2", desc="From second")
    store = FeatureStore(CORE, [first, second], modules_root)

    assert [f.id for f in store.list_features(CORE, D("7.20"))] == ["2", "1"]


def test_canonical_directory_name_is_found(store, core_dir):
    write_feature(core_dir, "7.1", "1", desc="Old")

    (f,) = store.list_features(CORE, D("7.10"))

    assert f.version == D("7.10")


def test_same_directory_is_read_once(store, core_dir):
    write_feature(core_dir, "7.2", "1", desc="Only once")

    assert len(store.list_features(CORE, D("7.2"))) == 1
    assert len(store.list_features(CORE, D("7.20"))) == 1


def test_id_sort_key():
    assert id_sort_key("010_dns") == 10
    assert id_sort_key("2.5-x") == D("2.5")
    assert id_sort_key("dns") == 0
