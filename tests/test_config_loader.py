import os

from planning_poker import config_loader


def test_bundled_table_loads():
    data, ver = config_loader.load_yaml_cached("card_quality.yaml")
    assert set(data) == {"categories", "tiers"}
    assert ver > 0


def test_missing_file_yields_empty(tmp_path, monkeypatch):
    monkeypatch.setenv("PLANNING_POKER_CONFIG_DIR", str(tmp_path))
    assert config_loader.load_yaml_cached("card_quality.yaml") == ({}, 0)


def test_cached_until_file_changes(tmp_path, monkeypatch):
    monkeypatch.setenv("PLANNING_POKER_CONFIG_DIR", str(tmp_path))
    fp = tmp_path / "t.yaml"
    fp.write_text("a: 1\n", encoding="utf-8")
    first, _ = config_loader.load_yaml_cached("t.yaml")
    assert first == {"a": 1}

    fp.write_text("a: 2\n", encoding="utf-8")
    st = fp.stat()
    os.utime(fp, (st.st_atime, st.st_mtime + 10))
    second, _ = config_loader.load_yaml_cached("t.yaml")
    assert second == {"a": 2}


def test_unparsable_yaml_yields_empty(tmp_path, monkeypatch):
    monkeypatch.setenv("PLANNING_POKER_CONFIG_DIR", str(tmp_path))
    (tmp_path / "bad.yaml").write_text("a: [1, 2\n", encoding="utf-8")
    assert config_loader.load_yaml_cached("bad.yaml") == ({}, 0)
