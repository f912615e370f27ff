# soilinfo/rrp/builder.py
"""Join the Donesol tables into the static RRP lookup.

Four semicolon separated exports are read:

* ``table_etude.csv``      studies (``NO_ETUDE``, ``ID_ETUDE``)
* ``table_ucs.csv``        soil mapping units (``NO_ETUDE``, ``NO_UCS``, ``ID_UCS``, ...)
* ``table_l_ucs_uts.csv``  unit/component links (``ID_UCS``, ``ID_UTS``, ``POURCENT``)
* ``table_uts.csv``        soil components (``ID_UTS``, ``RP_2008_NOM``)

and turned into one JSON object keyed ``"<NO_ETUDE>:<NO_UCS>"``.
"""
from __future__ import annotations

import asyncio
import csv
import io
import math
import os
import re
import tempfile
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

import orjson

from ..models import RrpComponent, RrpEntry
from ..utils.logging import get_logger

logger = get_logger(__name__)

ETUDE_FILE = "table_etude.csv"
UCS_FILE = "table_ucs.csv"
LINK_FILE = "table_l_ucs_uts.csv"
UTS_FILE = "table_uts.csv"

Row = Dict[str, str]
Number = Union[int, float]


@dataclass
class DonesolTables:
    etudes: List[Row]
    ucs: List[Row]
    links: List[Row]
    uts: List[Row]


def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Donesol exports are usually Latin-1
        return raw.decode("latin-1")


def _normalise_row(row: Mapping[Optional[str], object]) -> Row:
    out: Row = {}
    for key, value in row.items():
        if key is None or not isinstance(value, str):
            continue
        name = key.strip().upper()
        cell = value.strip()
        # the upper-case spelling wins over other casings of the same column
        if name in out and out[name] and key.strip() != name:
            continue
        out[name] = cell
    return out


def parse_table(text: str) -> List[Row]:
    """Parse a semicolon separated table; headers are upper-cased once here."""
    reader = csv.DictReader(io.StringIO(text), delimiter=";")
    rows: List[Row] = []
    for row in reader:
        normalised = _normalise_row(row)
        if any(normalised.values()):
            rows.append(normalised)
    return rows


def read_table(path: Union[str, Path]) -> List[Row]:
    return parse_table(_decode(Path(path).read_bytes()))


async def load_tables(data_dir: Union[str, Path]) -> DonesolTables:
    """Read the four tables concurrently; any unreadable file aborts the load."""
    base = Path(data_dir)
    etudes, ucs, links, uts = await asyncio.gather(
        *(asyncio.to_thread(read_table, base / name) for name in (ETUDE_FILE, UCS_FILE, LINK_FILE, UTS_FILE))
    )
    logger.info(
        "Donesol tables loaded",
        extra={'etudes': len(etudes), 'ucs': len(ucs), 'links': len(links), 'uts': len(uts)},
    )
    return DonesolTables(etudes=etudes, ucs=ucs, links=links, uts=uts)


def _cell(row: Mapping[str, str], name: str) -> Optional[str]:
    value = row.get(name)
    if value is None or value == "":
        return None
    return value


def to_number(value: Optional[str]) -> Optional[Number]:
    """Parse a numeric cell; blanks and garbage give None, never 0."""
    if value is None:
        return None
    text = str(value).strip().replace(",", ".")
    if not text or "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def round_percent(value: Optional[str]) -> int:
    """Whole percentage, halves rounded up; blanks and garbage give 0."""
    number = to_number(value)
    if number is None:
        return 0
    return int(math.floor(number + 0.5))


def _key_part(value: str) -> str:
    number = to_number(value)
    return str(number) if number is not None else value.strip()


def make_key(no_etude: str, no_ucs: str) -> str:
    return f"{_key_part(no_etude)}:{_key_part(no_ucs)}"


def _index_by(rows: Iterable[Row], column: str) -> Dict[str, Row]:
    index: Dict[str, Row] = {}
    for row in rows:
        key = _cell(row, column)
        if key is not None:
            index[key] = row
    return index


def _group_by(rows: Iterable[Row], column: str) -> Dict[str, List[Row]]:
    groups: Dict[str, List[Row]] = defaultdict(list)
    for row in rows:
        key = _cell(row, column)
        if key is not None:
            groups[key].append(row)
    return groups


def build_lookup(
    etudes: List[Row],
    ucs: List[Row],
    links: List[Row],
    uts: List[Row],
    colors: Optional[Mapping[str, str]] = None,
) -> Dict[str, RrpEntry]:
    etudes_by_no = _index_by(etudes, "NO_ETUDE")
    uts_by_id = _index_by(uts, "ID_UTS")
    links_by_ucs = _group_by(links, "ID_UCS")
    colors = colors or {}

    lookup: Dict[str, RrpEntry] = {}
    skipped = 0
    for unit in ucs:
        no_etude = _cell(unit, "NO_ETUDE")
        no_ucs = _cell(unit, "NO_UCS")
        if no_etude is None or no_ucs is None:
            skipped += 1
            continue

        etude = etudes_by_no.get(no_etude, {})
        id_ucs = _cell(unit, "ID_UCS")

        components = []
        for link in links_by_ucs.get(id_ucs, []) if id_ucs is not None else []:
            component = uts_by_id.get(_cell(link, "ID_UTS") or "", {})
            components.append(
                RrpComponent(
                    pourcent=round_percent(_cell(link, "POURCENT")),
                    rp_2008_nom=_cell(component, "RP_2008_NOM") or "",
                )
            )
        # sorted() is stable: equal percentages keep their link order
        components = sorted(components, key=lambda item: item.pourcent, reverse=True)

        color = _cell(unit, "COLOR_HEX")
        if color is None:
            code = _cell(unit, "CODE_COUL")
            color = colors.get(code) if code is not None else None

        key = make_key(no_etude, no_ucs)
        if key in lookup:
            logger.debug("Duplicate mapping unit key %s; keeping the later row", key)
        lookup[key] = RrpEntry(
            id_etude=to_number(_cell(etude, "ID_ETUDE")),
            id_ucs=to_number(id_ucs),
            nom_ucs=_cell(unit, "NOM_UCS") or "",
            reg_nat=_cell(unit, "REG_NAT") or "",
            alt_min=to_number(_cell(unit, "ALT_MIN")),
            alt_mod=to_number(_cell(unit, "ALT_MOD")),
            alt_max=to_number(_cell(unit, "ALT_MAX")),
            nb_uts=len(components),
            uts=components,
            color_hex=color,
        )

    if skipped:
        logger.warning("Skipped %d mapping units without NO_ETUDE/NO_UCS", skipped)
    return lookup


_SLD_RULE = re.compile(r"<(?:se:|sld:)?Rule\b[\s\S]*?</(?:se:|sld:)?Rule>", re.IGNORECASE)
_SLD_LITERAL = re.compile(r"<ogc:Literal>\s*([^<]+?)\s*</ogc:Literal>", re.IGNORECASE)
_SLD_FILL = re.compile(
    r"<(?:se:|sld:)?(?:SvgParameter|CssParameter)[^>]*name=['\"]fill['\"][^>]*>\s*(#[0-9a-fA-F]{6})\s*<",
    re.IGNORECASE,
)


def parse_sld_colors(sld_text: str) -> Dict[str, str]:
    """Map ``code_coul`` literals to fill colours from a QGIS/GeoServer SLD."""
    colors: Dict[str, str] = {}
    for match in _SLD_RULE.finditer(sld_text):
        rule = match.group(0)
        if "code_coul" not in rule.lower():
            continue
        code = _SLD_LITERAL.search(rule)
        fill = _SLD_FILL.search(rule)
        if code and fill:
            colors[code.group(1).strip()] = fill.group(1).strip()
    return colors


def dump_json(data: object) -> bytes:
    return orjson.dumps(data, option=orjson.OPT_INDENT_2)


def dump_lookup(lookup: Mapping[str, RrpEntry]) -> bytes:
    return dump_json({key: entry.model_dump(exclude_none=True) for key, entry in lookup.items()})


def write_atomic(path: Union[str, Path], data: bytes) -> None:
    write_all_atomic({path: data})


def write_all_atomic(outputs: Mapping[Union[str, Path], bytes]) -> None:
    """Stage every output in a temp file, then move them all into place.

    Nothing is replaced unless every payload was written.
    """
    staged: List[Tuple[str, Path]] = []
    try:
        for path, data in outputs.items():
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
            staged.append((tmp_name, target))
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
        for tmp_name, target in staged:
            os.replace(tmp_name, target)
    except BaseException:
        for tmp_name, _ in staged:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
        raise


async def build_lookup_file(
    data_dir: Union[str, Path],
    out_path: Union[str, Path],
    sld_path: Optional[Union[str, Path]] = None,
    colors_out_path: Optional[Union[str, Path]] = None,
) -> Dict[str, RrpEntry]:
    tables = await load_tables(data_dir)

    colors: Dict[str, str] = {}
    if sld_path is not None:
        colors = parse_sld_colors(_decode(Path(sld_path).read_bytes()))

    lookup = build_lookup(tables.etudes, tables.ucs, tables.links, tables.uts, colors=colors)
    outputs: Dict[Union[str, Path], bytes] = {out_path: dump_lookup(lookup)}
    if colors_out_path is not None:
        outputs[colors_out_path] = dump_json(colors)
    write_all_atomic(outputs)

    logger.info("Wrote %s with %d entries", out_path, len(lookup))
    if colors_out_path is not None:
        logger.info("Wrote %s with %d colours", colors_out_path, len(colors))
    return lookup
