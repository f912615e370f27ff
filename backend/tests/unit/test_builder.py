import asyncio

import orjson
import pytest

from soilinfo.rrp.builder import (
    build_lookup,
    build_lookup_file,
    dump_lookup,
    make_key,
    parse_sld_colors,
    parse_table,
    read_table,
    round_percent,
    to_number,
    write_atomic,
)

ETUDES = "NO_ETUDE;ID_ETUDE\n1;101\n"
UCS = (
    "NO_ETUDE;NO_UCS;ID_UCS;NOM_UCS;REG_NAT;ALT_MIN;ALT_MOD;ALT_MAX\n"
    "1;7;9001;Plateau calcaire;Causses;0;350;N/A\n"
)
LINKS = "ID_UCS;ID_UTS;POURCENT\n9001;1;40\n9001;2;60\n"
UTS = "ID_UTS;RP_2008_NOM\n1;CALCOSOL\n2;RENDOSOL\n"

SLD = """<?xml version="1.0" encoding="UTF-8"?>
<StyledLayerDescriptor xmlns:se="http://www.opengis.net/se" xmlns:ogc="http://www.opengis.net/ogc">
  <se:Rule>
    <ogc:Filter><ogc:PropertyIsEqualTo>
      <ogc:PropertyName>code_coul</ogc:PropertyName><ogc:Literal>12</ogc:Literal>
    </ogc:PropertyIsEqualTo></ogc:Filter>
    <se:PolygonSymbolizer><se:Fill>
      <se:SvgParameter name="fill">#a1b2c3</se:SvgParameter>
    </se:Fill></se:PolygonSymbolizer>
  </se:Rule>
  <se:Rule>
    <ogc:Filter><ogc:PropertyIsEqualTo>
      <ogc:PropertyName>other</ogc:PropertyName><ogc:Literal>13</ogc:Literal>
    </ogc:PropertyIsEqualTo></ogc:Filter>
    <se:PolygonSymbolizer><se:Fill>
      <se:SvgParameter name="fill">#000000</se:SvgParameter>
    </se:Fill></se:PolygonSymbolizer>
  </se:Rule>
</StyledLayerDescriptor>
"""


def _write_tables(directory, etudes=ETUDES, ucs=UCS, links=LINKS, uts=UTS, encoding="utf-8"):
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "table_etude.csv").write_bytes(etudes.encode(encoding))
    (directory / "table_ucs.csv").write_bytes(ucs.encode(encoding))
    (directory / "table_l_ucs_uts.csv").write_bytes(links.encode(encoding))
    (directory / "table_uts.csv").write_bytes(uts.encode(encoding))
    return directory


def _build(etudes=ETUDES, ucs=UCS, links=LINKS, uts=UTS, colors=None):
    return build_lookup(parse_table(etudes), parse_table(ucs), parse_table(links), parse_table(uts), colors=colors)


@pytest.mark.parametrize(
    "raw, expected",
    [("40", 40), ("12.5", 12.5), ("12,5", 12.5), (" 7 ", 7), ("3.0", 3), ("", None), (None, None),
     ("N/A", None), ("abc", None), ("nan", None), ("inf", None), ("1_000", None), ("0", 0)],
)
def test_to_number(raw, expected):
    result = to_number(raw)
    assert result == expected
    assert type(result) is type(expected)


def test_make_key_normalises_numbers():
    assert make_key("1", "7") == "1:7"
    assert make_key("01", "7.0") == "1:7"
    assert make_key(" A12 ", "3") == "A12:3"


def test_join_builds_sorted_entry():
    lookup = _build()

    assert list(lookup) == ["1:7"]
    entry = lookup["1:7"]
    assert entry.id_etude == 101
    assert entry.id_ucs == 9001
    assert entry.nom_ucs == "Plateau calcaire"
    assert entry.reg_nat == "Causses"
    assert entry.nb_uts == 2
    assert [(c.pourcent, c.rp_2008_nom) for c in entry.uts] == [(60, "RENDOSOL"), (40, "CALCOSOL")]


def test_join_two_components_by_percentage():
    lookup = _build(
        etudes="NO_ETUDE;ID_ETUDE\n1;100\n",
        ucs="NO_ETUDE;NO_UCS;ID_UCS;NOM_UCS\n1;7;55;Limon\n",
        links="ID_UCS;ID_UTS;POURCENT\n55;2;30\n55;1;70\n",
        uts="ID_UTS;RP_2008_NOM\n1;Clay\n2;Sand\n",
    )
    serialised = orjson.loads(dump_lookup(lookup))

    assert serialised == {
        "1:7": {
            "id_etude": 100,
            "id_ucs": 55,
            "nom_ucs": "Limon",
            "reg_nat": "",
            "nb_uts": 2,
            "uts": [{"pourcent": 70, "rp_2008_nom": "Clay"}, {"pourcent": 30, "rp_2008_nom": "Sand"}],
        }
    }


def test_altitudes_keep_zero_and_drop_garbage():
    entry = _build()["1:7"]
    assert entry.alt_min == 0
    assert entry.alt_mod == 350
    assert entry.alt_max is None

    serialised = orjson.loads(dump_lookup(_build()))["1:7"]
    assert serialised["alt_min"] == 0
    assert "alt_max" not in serialised
    assert "color_hex" not in serialised


def test_missing_study_leaves_id_etude_out():
    lookup = _build(etudes="NO_ETUDE;ID_ETUDE\n2;202\n")
    assert lookup["1:7"].id_etude is None
    assert "id_etude" not in orjson.loads(dump_lookup(lookup))["1:7"]


def test_unit_without_links_has_no_components():
    lookup = _build(links="ID_UCS;ID_UTS;POURCENT\n")
    assert lookup["1:7"].uts == []
    assert lookup["1:7"].nb_uts == 0


def test_unknown_component_gets_blank_name():
    lookup = _build(links="ID_UCS;ID_UTS;POURCENT\n9001;99;100\n")
    assert lookup["1:7"].uts[0].rp_2008_nom == ""
    assert lookup["1:7"].uts[0].pourcent == 100


def test_equal_percentages_keep_link_order():
    links = "ID_UCS;ID_UTS;POURCENT\n9001;2;50\n9001;1;50\n"
    names = [c.rp_2008_nom for c in _build(links=links)["1:7"].uts]
    assert names == ["RENDOSOL", "CALCOSOL"]


def test_units_without_key_columns_are_skipped():
    ucs = "NO_ETUDE;NO_UCS;ID_UCS\n1;;9001\n;8;9002\n1;9;9003\n"
    assert list(_build(ucs=ucs)) == ["1:9"]


def test_duplicate_key_keeps_later_row():
    ucs = "NO_ETUDE;NO_UCS;ID_UCS;NOM_UCS\n1;7;9001;First\n1;07;9002;Second\n"
    lookup = _build(ucs=ucs)
    assert list(lookup) == ["1:7"]
    assert lookup["1:7"].nom_ucs == "Second"


def test_headers_are_case_insensitive():
    ucs = "no_etude;No_Ucs;id_ucs;nom_ucs\n1;7;9001;Vallée\n"
    links = "id_ucs;id_uts;pourcent\n9001;1;100\n"
    entry = _build(ucs=ucs, links=links)["1:7"]
    assert entry.nom_ucs == "Vallée"
    assert entry.uts[0].rp_2008_nom == "CALCOSOL"


def test_read_table_falls_back_to_latin1(tmp_path):
    path = tmp_path / "table_ucs.csv"
    path.write_bytes("NO_ETUDE;NO_UCS;NOM_UCS\n1;7;Sols bruns lessivés\n".encode("latin-1"))
    rows = read_table(path)
    assert rows == [{"NO_ETUDE": "1", "NO_UCS": "7", "NOM_UCS": "Sols bruns lessivés"}]


def test_read_table_strips_utf8_bom(tmp_path):
    path = tmp_path / "table_etude.csv"
    path.write_bytes("\ufeffNO_ETUDE;ID_ETUDE\n1;101\n".encode("utf-8"))
    assert read_table(path) == [{"NO_ETUDE": "1", "ID_ETUDE": "101"}]


def test_color_from_column_or_sld():
    colors = parse_sld_colors(SLD)
    assert colors == {"12": "#a1b2c3"}

    ucs = "NO_ETUDE;NO_UCS;ID_UCS;CODE_COUL;COLOR_HEX\n1;7;9001;12;\n1;8;9002;12;#ffffff\n1;9;9003;99;\n"
    lookup = _build(ucs=ucs, colors=colors)
    assert lookup["1:7"].color_hex == "#a1b2c3"
    assert lookup["1:8"].color_hex == "#ffffff"
    assert lookup["1:9"].color_hex is None


def test_build_lookup_file_is_deterministic(tmp_path):
    data_dir = _write_tables(tmp_path / "BDDonesol")
    out = tmp_path / "public" / "rrp_lookup.json"

    lookup = asyncio.run(build_lookup_file(data_dir, out))
    first = out.read_bytes()
    asyncio.run(build_lookup_file(data_dir, out))

    assert out.read_bytes() == first
    assert set(lookup) == {"1:7"}
    data = orjson.loads(first)
    assert data["1:7"]["nb_uts"] == 2
    assert data["1:7"]["uts"][0] == {"pourcent": 60, "rp_2008_nom": "RENDOSOL"}
    # no temporary files are left next to the output
    assert [p.name for p in out.parent.iterdir()] == ["rrp_lookup.json"]


def test_build_lookup_file_writes_colours(tmp_path):
    data_dir = _write_tables(tmp_path / "BDDonesol", encoding="latin-1")
    sld = tmp_path / "style.sld"
    sld.write_text(SLD, encoding="utf-8")
    out = tmp_path / "rrp_lookup.json"
    colors_out = tmp_path / "rrp_colors.json"

    asyncio.run(build_lookup_file(data_dir, out, sld_path=sld, colors_out_path=colors_out))
    assert orjson.loads(colors_out.read_bytes()) == {"12": "#a1b2c3"}


def test_missing_table_aborts_without_output(tmp_path):
    data_dir = _write_tables(tmp_path / "BDDonesol")
    (data_dir / "table_uts.csv").unlink()
    out = tmp_path / "rrp_lookup.json"

    with pytest.raises(OSError):
        asyncio.run(build_lookup_file(data_dir, out))
    assert not out.exists()


@pytest.mark.parametrize(
    "raw, expected",
    [("60", 60), ("33.5", 34), ("12,4", 12), ("49.49", 49), ("", 0), ("N/A", 0), (None, 0)],
)
def test_round_percent(raw, expected):
    assert round_percent(raw) == expected


def test_fractional_percentages_are_rounded():
    links = "ID_UCS;ID_UTS;POURCENT\n9001;1;33.4\n9001;2;66,6\n"
    entry = _build(links=links)["1:7"]
    assert [(c.pourcent, c.rp_2008_nom) for c in entry.uts] == [(67, "RENDOSOL"), (33, "CALCOSOL")]
    assert all(type(c.pourcent) is int for c in entry.uts)


def test_write_atomic_replaces_existing_file(tmp_path):
    target = tmp_path / "nested" / "out.json"
    write_atomic(target, b"first")
    write_atomic(target, b"second")
    assert target.read_bytes() == b"second"
    assert [p.name for p in target.parent.iterdir()] == ["out.json"]


def test_failed_colours_output_leaves_no_lookup(tmp_path):
    data_dir = _write_tables(tmp_path / "BDDonesol")
    sld = tmp_path / "style.sld"
    sld.write_text(SLD, encoding="utf-8")
    out_dir = tmp_path / "public"
    out_dir.mkdir()
    out = out_dir / "rrp_lookup.json"
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(OSError):
        asyncio.run(build_lookup_file(data_dir, out, sld_path=sld, colors_out_path=blocker / "rrp_colors.json"))

    assert not out.exists()
    assert list(out_dir.iterdir()) == []
