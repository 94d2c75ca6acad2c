"""Tests for library API discovery."""

from conftest import find_node

from luna_cli.call_graph import call_source_names
from luna_cli.config import Components, ScanConfig
from luna_cli.library_api import INSTANCE, extract_libs, reference_name

FILE = "/proj/index.js"
SRC = "/proj"


def _libs(parse, source, config):
    return extract_libs(parse(source), FILE, SRC, config)


def test_property_access_on_require(parse, scan_config):
    nodes = parse('require("fs").readFile("a.txt");')

    libs = extract_libs(nodes, FILE, SRC, scan_config)
    assert list(libs) == ["fs"]
    usage = libs["fs"]["readFile"]
    assert usage.library == "fs"
    assert usage.source_ids == [call_source_names(nodes[0])[0]]
    prop = find_node(nodes, "property_identifier", "readFile")
    assert usage.nodes == [prop.position()]


def test_member_chains_nest(parse, scan_config):
    libs = _libs(parse, 'const fs = require("fs");\nfs.promises.readFile("a");\nfs.stat("b");', scan_config)

    api = libs["fs"]
    assert set(api) == {"promises", "stat"}
    assert list(api["promises"].children) == ["readFile"]
    assert api["promises"].children["readFile"].library == "fs"


def test_source_id_is_enclosing_function(parse, scan_config):
    nodes = parse('const fs = require("fs");\nfunction load() { return fs.readFileSync("x"); }')

    libs = extract_libs(nodes, FILE, SRC, scan_config)
    load = find_node(nodes, "function_declaration")
    assert libs["fs"]["readFileSync"].source_ids == [call_source_names(load)[0]]


def test_destructuring_prefers_local_name(parse, scan_config):
    libs = _libs(parse, 'const { readFile, writeFile: write, mode = 1 } = require("fs");', scan_config)

    assert set(libs["fs"]) == {"readFile", "write", "mode"}


def test_called_library_value_is_a_reference(parse, scan_config):
    nodes = parse('const glob = require("glob");\nglob("*.js");\nglob.sync("*.js");')

    api = extract_libs(nodes, FILE, SRC, scan_config)["glob"]
    assert set(api) == {reference_name("glob"), "sync"}
    assert reference_name("glob") == '(reference)\nas "glob"'
    assert set(api[reference_name("glob")].source_ids) == {call_source_names(nodes[0])[0]}


def test_instantiation(parse, scan_config):
    libs = _libs(parse, 'const Server = require("srv");\nconst s = new Server();\ns.listen(80);', scan_config)

    instance = libs["srv"][INSTANCE]
    assert list(instance.children) == ["listen"]


def test_instantiation_assigned_to_property(parse, scan_config):
    libs = _libs(parse, 'this.client = new (require("redis"))();', scan_config)

    assert list(libs["redis"]) == [INSTANCE]


def test_es_imports(parse, scan_config):
    source = (
        'import j from "jquery";\n'
        'import * as path from "path";\n'
        'import { stat, readFile as read } from "fs";\n'
        'j.ajax("/x");\npath.join("a", "b");\nstat("a");\nread("b");'
    )

    libs = _libs(parse, source, scan_config)

    assert set(libs) == {"jquery", "path", "fs"}
    assert list(libs["jquery"]) == ["ajax"]
    assert list(libs["path"]) == ["join"]
    assert set(libs["fs"]) == {"stat", "read"}
    assert len(libs["fs"]["stat"].source_ids) == 2


def test_json_specifiers_have_no_api(parse, scan_config):
    libs = _libs(parse, 'const cfg = require("./config.json");\ncfg.port;', scan_config)

    assert libs == {"/proj/config.json": {}}


def test_relative_require_is_made_absolute(parse, scan_config):
    libs = _libs(parse, 'require("./lib/../lib/util").format("x");', scan_config)

    assert list(libs) == ["/proj/lib/util"]
    assert list(libs["/proj/lib/util"]) == ["format"]


def test_repeated_specifiers_merge(parse, scan_config):
    libs = _libs(parse, 'require("fs").readFile("a");\nrequire("fs").readFile("b");', scan_config)

    usage = libs["fs"]["readFile"]
    assert len(usage.nodes) == 2
    assert len(usage.source_ids) == 2


def test_dynamic_import(parse, scan_config):
    libs = _libs(parse, 'import("lodash").then((m) => m);', scan_config)

    assert list(libs["lodash"]) == ["then"]


def test_unknown_specifier_is_skipped(parse, scan_config):
    assert _libs(parse, "require(name());", scan_config) == {}


def test_reassignment_cycle_terminates(parse, scan_config):
    libs = _libs(parse, 'let a = require("x");\na = a.next;\na.b();', scan_config)

    assert set(libs["x"]) == {"next", "b"}


def test_disabled_component(parse):
    config = ScanConfig(components=Components(library_api=False))

    assert _libs(parse, 'require("fs").readFile("a");', config) == {}
