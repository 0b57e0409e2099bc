import copy
import os
import sys
import tempfile
import unittest
from pathlib import Path


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.component_settings import ResolutionEngine, ResolveRequest, parse_per_page, split_reference
from app.engine_config import EngineConfig
from schema_registry import SchemaRegistry
from view_config_store import FileConfigStore, MemoryConfigStore, MemoryScriptStore


TEMPLATES = {
    "table": {
        "table": {
            "headers": "on",
            "pagination": "on",
            "datalink": "on",
            "filters": "off",
            "dense": True,
            "emptyText": {"en": "Nothing here", "dv": "އެއްވެސް ނެތް"},
        }
    },
    "toolbar": {"toolbar": {"crudLink": "on", "buttons": ["create", "export", "refresh"]}},
    "form": {"form": {"fields": "on", "createLink": "on", "functions": "on", "groups": []}},
    "filterSection": {"filterSection": {"filters": "on"}},
    "meta": {"meta": {"pagination": "on", "datalink": "on"}},
}

LIST_VIEW = {
    "lang": ["en", "dv"],
    "columns": "first_name,status,country.name_eng",
    "per_page": 15,
    "filters": ["status"],
    "columnCustomizations": {"status": {"order": 0}},
    "components": {
        "toolbar": {"buttons": ["create", "refresh"]},
        "filterSection": True,
        "table": {"dense": "off"},
        "form": {"fields": [{"key": "first_name", "group": "main"}]},
    },
}

PERSON_VIEW = {
    "listView": LIST_VIEW,
    "card": {"lang": ["en"], "component": "table", "columns": "first_name", "pagination": "off"},
    "table2": {"lang": ["en"], "columns": "first_name"},
    "dvOnly": {"lang": ["dv"], "columns": "first_name", "components": {"table": {}}},
    "emptyView": {"lang": ["en"], "noModel": True, "columnsSchema": {}, "columns": "title", "components": {"table": {}}},
    "noColumns": {"lang": ["en"], "components": {"table": {}}},
    "badColumn": {"lang": ["en"], "columns": "nope", "components": {"table": {}}},
    "oneMissing": {"lang": ["en"], "columns": "first_name", "components": {"chart": {}, "table": {}}},
    "twoMissing": {"lang": ["en"], "columns": "first_name", "components": {"chart": {}, "map": {}, "table": {}}},
    "perComponent": {
        "lang": ["en"],
        "columns": "first_name,status",
        "per_page": 15,
        "components": {
            "table": {
                "columns": "first_name",
                "per_page": 5,
                "columnCustomizations": {"first_name": {"title": "Name"}},
            },
            "table2": {"lang": ["dv"]},
        },
    },
    "formView": {
        "lang": ["en"],
        "columns": "first_name",
        "functions": {"save": {"file": "person.js", "function": "onSave"}},
        "components": {
            "form": {"fields": [{"key": "first_name"}]},
            "table": {"functions": {"refresh": {"file": "person.js", "function": "onRefresh"}}},
        },
    },
    "gridView": {"lang": ["en"], "componentSettings": {"table": {"component": "table"}}, "components": {"x": {}}},
}

REPORT_VIEW = {
    "reportView": {
        "lang": ["en"],
        "noModel": True,
        "columns": "title,total",
        "per_page": 10,
        "columnsSchema": {
            "title": {"type": "string", "label": "Title"},
            "total": {"type": "number", "label": {"en": "Total", "dv": "ޖުމްލަ"}},
        },
        "components": {"table": {}, "people": "person/card"},
    }
}

LOOP_VIEW = {
    "aView": {
        "lang": ["en"],
        "noModel": True,
        "columnsSchema": {"x": {}},
        "columns": "x",
        "components": {"again": "loop/aView"},
    }
}

SCRIPTS = {"person.js": "function onSave(row) { return row; }\nfunction onRefresh() { reload(); }\n"}


def _registry() -> SchemaRegistry:
    registry = SchemaRegistry()
    registry.register(
        "Person",
        {
            "id": {"type": "number", "hidden": True},
            "first_name": {
                "type": "string",
                "label": {"en": "First name", "dv": "ފުރަތަމަ ނަން"},
                "sortable": True,
                "formField": True,
            },
            "status": {
                "type": "string",
                "label": "Status",
                "inputType": "select",
                "formField": True,
                "select": {"mode": "self", "items": ["active", "inactive"]},
            },
            "country_id": {
                "type": "number",
                "formField": True,
                "inputType": "select",
                "select": {"mode": "relation", "relationship": "country"},
            },
            "born_on": {"type": "date", "lang": ["en"]},
        },
        relations={"country": "Country"},
    )
    registry.register("Country", {"id": {"type": "number", "hidden": True}, "name_eng": {"type": "string", "label": "Country"}})
    return registry


class ExplodingRegistry:
    def get(self, name):
        raise AssertionError("registry must not be consulted")

    def resolve_schema(self, name):
        raise AssertionError("registry must not be consulted")


def _engine(config: EngineConfig | None = None, views: dict | None = None, registry=None) -> ResolutionEngine:
    store = MemoryConfigStore(
        views if views is not None else {"person": PERSON_VIEW, "report": REPORT_VIEW, "loop": LOOP_VIEW},
        TEMPLATES,
    )
    return ResolutionEngine(
        config or EngineConfig(),
        store,
        registry if registry is not None else _registry(),
        MemoryScriptStore(SCRIPTS),
    )


def _resolve(engine: ResolutionEngine, entity: str = "Person", **kwargs) -> tuple[dict, int]:
    return engine.resolve(ResolveRequest(entity=entity, **kwargs))


class TestHelpers(unittest.TestCase):
    def test_parse_per_page_picks_first_positive(self) -> None:
        self.assertEqual(parse_per_page("7", 15, default=25), 7)
        self.assertEqual(parse_per_page("abc", 0, -2, None, default=25), 25)
        self.assertEqual(parse_per_page(True, "", 9, default=25), 9)

    def test_split_reference(self) -> None:
        self.assertEqual(split_reference("Dashboard", "person/card"), ("person", "card"))
        self.assertEqual(split_reference("Dashboard", "listView"), ("Dashboard", "listView"))
        self.assertEqual(split_reference("Dashboard", "/card"), ("Dashboard", "/card"))


class TestListView(unittest.TestCase):
    def setUp(self) -> None:
        self.body, self.status = _resolve(_engine(), component="listView", lang="en")
        self.settings = self.body["componentSettings"]

    def test_response_envelope(self) -> None:
        self.assertEqual(self.status, 200)
        self.assertEqual(self.body["component"], "listView")
        self.assertEqual(list(self.settings.keys()), ["toolbar", "filterSection", "table", "form"])
        self.assertNotIn("headers", self.body)

    def test_toolbar_buttons_allow_list(self) -> None:
        self.assertEqual(self.settings["toolbar"], {"crudLink": "gapi/Person", "buttons": ["create", "refresh"]})

    def test_filter_section_uses_view_allow_list(self) -> None:
        self.assertEqual(
            self.settings["filterSection"],
            {
                "filters": [
                    {
                        "type": "Select",
                        "key": "status",
                        "label": "Status",
                        "itemTitle": "status",
                        "itemValue": "status",
                        "items": [{"status": "active"}, {"status": "inactive"}],
                    }
                ]
            },
        )

    def test_table_headers_ordered_and_localized(self) -> None:
        table = self.settings["table"]
        self.assertEqual([h["value"] for h in table["headers"]], ["status", "first_name", "country.name_eng"])
        self.assertEqual([h["title"] for h in table["headers"]], ["Status", "First name", "Country"])
        self.assertEqual(table["pagination"], {"current_page": 1, "per_page": 15})
        self.assertEqual(
            table["datalink"],
            "gapi/Person?columns=first_name,status,country.name_eng&with=country:name_eng&per_page=15",
        )
        self.assertNotIn("dense", table)
        self.assertNotIn("filters", table)
        self.assertEqual(table["emptyText"], "Nothing here")

    def test_form_fields_restricted_to_override(self) -> None:
        form = self.settings["form"]
        self.assertEqual(
            form["fields"],
            [
                {
                    "key": "first_name",
                    "label": "First name",
                    "lang": ["en", "dv"],
                    "type": "string",
                    "inputType": "text",
                    "group": "main",
                }
            ],
        )
        self.assertEqual(form["createLink"], "gapi/Person")
        self.assertEqual(form["groups"], [])
        self.assertEqual(form["functions"], {})

    def test_resolution_is_idempotent(self) -> None:
        again, _ = _resolve(_engine(), component="listView", lang="en")
        self.assertEqual(again, self.body)


class TestLanguages(unittest.TestCase):
    def test_default_language_applied(self) -> None:
        body, _ = _resolve(_engine(), component="listView")
        table = body["componentSettings"]["table"]
        self.assertEqual(table["headers"][1]["title"], "ފުރަތަމަ ނަން")
        self.assertEqual(table["emptyText"], "އެއްވެސް ނެތް")

    def test_unsupported_language_short_circuits(self) -> None:
        body, status = _resolve(_engine(registry=ExplodingRegistry()), component="listView", lang="fr")
        self.assertEqual(status, 200)
        self.assertEqual(body, {"message": "Language 'fr' not supported by view config", "data": []})

    def test_language_check_is_case_insensitive(self) -> None:
        _, status = _resolve(_engine(), component="listView", lang="EN")
        self.assertEqual(status, 200)

    def test_block_without_lang_is_gated(self) -> None:
        views = {"person": {"bare": {"columns": "first_name", "components": {"table": {}}}}}
        body, status = _resolve(_engine(views=views), component="bare", lang="en")
        self.assertEqual(status, 200)
        self.assertEqual(body["data"], [])

    def test_component_level_lang_drops_component(self) -> None:
        body, _ = _resolve(_engine(), component="perComponent", lang="en")
        self.assertEqual(list(body["componentSettings"].keys()), ["table"])

    def test_language_unsupported_columns_removed(self) -> None:
        body, _ = _resolve(_engine(), component="dvOnly", lang="dv", columns="first_name,born_on")
        table = body["componentSettings"]["table"]
        self.assertEqual([h["value"] for h in table["headers"]], ["first_name"])
        self.assertEqual(table["datalink"], "gapi/Person?columns=first_name&per_page=25")


class TestColumnsAndPaging(unittest.TestCase):
    def test_request_columns_override_block(self) -> None:
        body, _ = _resolve(_engine(), component="listView", lang="en", columns="first_name")
        self.assertEqual([h["value"] for h in body["componentSettings"]["table"]["headers"]], ["first_name"])

    def test_duplicate_tokens_rendered_once(self) -> None:
        body, _ = _resolve(_engine(), component="listView", lang="en", columns="first_name,first_name,status")
        table = body["componentSettings"]["table"]
        self.assertEqual([h["value"] for h in table["headers"]], ["status", "first_name"])
        self.assertEqual(table["datalink"], "gapi/Person?columns=first_name,status&per_page=15")

    def test_request_per_page_wins_over_block(self) -> None:
        body, _ = _resolve(_engine(), component="listView", lang="en", per_page="40")
        self.assertEqual(body["componentSettings"]["table"]["pagination"]["per_page"], 40)

    def test_invalid_per_page_falls_back(self) -> None:
        body, _ = _resolve(_engine(), component="listView", lang="en", per_page="zero")
        self.assertEqual(body["componentSettings"]["table"]["pagination"]["per_page"], 15)

    def test_component_level_settings(self) -> None:
        body, _ = _resolve(_engine(), component="perComponent", lang="en")
        table = body["componentSettings"]["table"]
        self.assertEqual(table["headers"][0]["title"], "Name")
        self.assertEqual([h["value"] for h in table["headers"]], ["first_name"])
        self.assertEqual(table["datalink"], "gapi/Person?columns=first_name&per_page=5")
        self.assertEqual(table["pagination"]["per_page"], 5)


class TestComponentBlocks(unittest.TestCase):
    def test_standalone_block_with_explicit_component(self) -> None:
        body, status = _resolve(_engine(), component="card", lang="en")
        self.assertEqual(status, 200)
        self.assertEqual(body["component"], "card")
        card = body["componentSettings"]["card"]
        self.assertNotIn("pagination", card)
        self.assertNotIn("component", card)
        self.assertEqual(card["datalink"], "gapi/Person?columns=first_name&per_page=25")

    def test_trailing_digits_select_template(self) -> None:
        body, _ = _resolve(_engine(), component="table2", lang="en")
        self.assertEqual(body["component"], "table")
        self.assertEqual(list(body["componentSettings"].keys()), ["table2"])
        self.assertTrue(body["componentSettings"]["table2"]["dense"])

    def test_single_component_settings_mode(self) -> None:
        body, status = _resolve(_engine(), component="listView", lang="en", component_settings="table")
        self.assertEqual(status, 200)
        self.assertEqual(list(body["componentSettings"].keys()), ["table"])
        self.assertTrue(body["componentSettings"]["table"]["dense"])

    def test_single_component_missing_template(self) -> None:
        body, status = _resolve(_engine(), component="listView", lang="en", component_settings="chart")
        self.assertEqual(status, 422)
        self.assertEqual(body, {"error": "Component config 'chart' not found"})

    def test_functions_resolved_for_form_and_overrides(self) -> None:
        body, _ = _resolve(_engine(), component="formView", lang="en")
        settings = body["componentSettings"]
        self.assertEqual(settings["form"]["functions"], {"save": "return row;"})
        self.assertEqual(settings["table"]["functions"], {"refresh": "reload();"})


class TestFailures(unittest.TestCase):
    def test_component_required(self) -> None:
        self.assertEqual(_resolve(_engine()), ({"error": "component parameter is required"}, 422))

    def test_view_config_missing(self) -> None:
        body, status = _resolve(_engine(), entity="Nope", component="listView")
        self.assertEqual((body, status), ({"error": "view config file missing for model"}, 422))

    def test_component_key_missing(self) -> None:
        body, _ = _resolve(_engine(), component="unknownView")
        self.assertEqual(body, {"error": "component key not found in view config"})

    def test_columns_undefined(self) -> None:
        body, _ = _resolve(_engine(), component="noColumns", lang="en")
        self.assertEqual(body, {"error": "columns not defined in view config for component"})

    def test_no_model_without_schema(self) -> None:
        body, status = _resolve(_engine(), component="emptyView", lang="en")
        self.assertEqual(status, 422)
        self.assertEqual(body, {"error": "noModel mode requires columnsSchema in view config"})

    def test_no_model_without_schema_fails_before_language_gate(self) -> None:
        body, status = _resolve(_engine(), component="emptyView", lang="fr")
        self.assertEqual(status, 422)
        self.assertEqual(body, {"error": "noModel mode requires columnsSchema in view config"})

    def test_unknown_entity_schema(self) -> None:
        views = {"ghost": {"listView": {"lang": ["en"], "columns": "a", "components": {"table": {}}}}}
        body, _ = _resolve(_engine(views=views), entity="Ghost", component="listView", lang="en")
        self.assertEqual(body, {"error": "Model 'Ghost' not found or missing schema"})

    def test_unknown_column(self) -> None:
        body, _ = _resolve(_engine(), component="badColumn", lang="en")
        self.assertEqual(body, {"error": "Column 'nope' is not defined in schema"})

    def test_unknown_relation_in_request_columns(self) -> None:
        body, _ = _resolve(_engine(), component="listView", lang="en", columns="city.name")
        self.assertEqual(body, {"error": "Unknown relation reference 'city' in columns"})

    def test_one_missing_template(self) -> None:
        body, _ = _resolve(_engine(), component="oneMissing", lang="en")
        self.assertEqual(body, {"error": "Component config 'chart' not found"})

    def test_several_missing_templates(self) -> None:
        body, _ = _resolve(_engine(), component="twoMissing", lang="en")
        self.assertEqual(body, {"error": "Component config(s) not found", "missingComponents": ["chart", "map"]})


class TestNoModel(unittest.TestCase):
    def test_report_view_from_inline_schema(self) -> None:
        body, status = _resolve(_engine(), entity="Report", component="reportView", lang="en")
        self.assertEqual(status, 200)
        table = body["componentSettings"]["table"]
        self.assertEqual([h["title"] for h in table["headers"]], ["Title", "Total"])
        self.assertEqual(table["datalink"], "gapi/Report?columns=title,total&per_page=10")

    def test_cross_entity_reference_unwraps_block(self) -> None:
        body, _ = _resolve(_engine(), entity="Report", component="reportView", lang="en")
        people = body["componentSettings"]["people"]
        self.assertEqual(people["datalink"], "gapi/Person?columns=first_name&per_page=25")
        self.assertNotIn("pagination", people)

    def test_cross_entity_request_component(self) -> None:
        body, status = _resolve(_engine(), entity="Report", component="person/card", lang="en")
        self.assertEqual(status, 200)
        self.assertEqual(body["componentSettings"]["card"]["datalink"], "gapi/Person?columns=first_name&per_page=25")

    def test_reference_cycle_is_bounded(self) -> None:
        body, status = _resolve(_engine(), entity="Loop", component="aView", lang="en")
        self.assertEqual(status, 422)
        self.assertEqual(body, {"error": "Component reference 'loop/aView' nests too deeply"})


class TestViewMode(unittest.TestCase):
    def test_view_returns_raw_components(self) -> None:
        body, status = _resolve(_engine(), view="listView", lang="en")
        self.assertEqual(status, 200)
        self.assertEqual(body, {"componentSettings": LIST_VIEW["components"]})

    def test_component_settings_key_preferred(self) -> None:
        body, _ = _resolve(_engine(), view="gridView", lang="en")
        self.assertEqual(body, {"componentSettings": {"table": {"component": "table"}}})

    def test_view_language_gate(self) -> None:
        body, _ = _resolve(_engine(), view="listView", lang="fr")
        self.assertEqual(body["data"], [])

    def test_unknown_view(self) -> None:
        body, status = _resolve(_engine(), view="missingView", lang="en")
        self.assertEqual((body, status), ({"error": "view key not found in view config"}, 422))


class TestFeatureFlags(unittest.TestCase):
    def test_meta_and_top_level_sections(self) -> None:
        config = EngineConfig(
            include_meta=True,
            include_top_level_headers=True,
            include_top_level_filters=True,
            include_top_level_pagination=True,
        )
        body, _ = _resolve(_engine(config), component="listView", lang="en")
        self.assertEqual(
            body["componentSettings"]["meta"],
            {
                "pagination": {"current_page": 1, "per_page": 15},
                "datalink": "gapi/Person?columns=first_name,status,country.name_eng&with=country:name_eng&per_page=15",
            },
        )
        self.assertEqual([h["value"] for h in body["headers"]], ["status", "first_name", "country.name_eng"])
        self.assertEqual([f["key"] for f in body["filters"]], ["status"])
        self.assertEqual(body["pagination"], {"current_page": 1, "per_page": 15})

    def test_hidden_headers_flag(self) -> None:
        config = EngineConfig(include_hidden_columns_in_headers=True)
        body, _ = _resolve(_engine(config), component="listView", lang="en", columns="id,first_name")
        self.assertEqual([h["value"] for h in body["componentSettings"]["table"]["headers"]], ["id", "first_name"])

    def test_validation_on_request_blocks_errors(self) -> None:
        views = {"person": {"listView": LIST_VIEW, "broken": {"columns": "first_name"}}}
        body, status = _resolve(_engine(EngineConfig(validate_on_request=True), views=views), component="listView", lang="en")
        self.assertEqual(status, 422)
        self.assertEqual(body["error"], "View config validation failed")
        self.assertEqual([e["path"] for e in body["validation"]["errors"]], ["broken.lang"])

    def test_validation_on_request_runs_after_language_gate(self) -> None:
        views = {"person": {"listView": LIST_VIEW, "broken": {"columns": "first_name"}}}
        engine = _engine(EngineConfig(validate_on_request=True), views=views, registry=ExplodingRegistry())
        body, status = _resolve(engine, component="listView", lang="fr")
        self.assertEqual(status, 200)
        self.assertEqual(body, {"message": "Language 'fr' not supported by view config", "data": []})

    def test_validation_on_request_passes_clean_config(self) -> None:
        views = {"person": {"listView": LIST_VIEW}}
        _, status = _resolve(_engine(EngineConfig(validate_on_request=True), views=views), component="listView", lang="en")
        self.assertEqual(status, 200)

    def test_store_documents_not_mutated(self) -> None:
        before = copy.deepcopy(PERSON_VIEW)
        _resolve(_engine(), component="listView", lang="en")
        self.assertEqual(PERSON_VIEW, before)


class TestInvalidJson(unittest.TestCase):
    def _engine(self, tmp: str, debug_level: int) -> ResolutionEngine:
        views = Path(tmp) / "view_configs"
        views.mkdir()
        (views / "person.json").write_text('{"listView": {', encoding="utf-8")
        store = FileConfigStore(views, Path(tmp) / "templates")
        return ResolutionEngine(EngineConfig(debug_level=debug_level), store, _registry())

    def test_generic_message_by_default(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            body, status = _resolve(self._engine(tmp, 0), component="listView")
        self.assertEqual(status, 422)
        self.assertEqual(body, {"error": "Invalid JSON in config file"})

    def test_file_named_at_debug_level_one(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            body, _ = _resolve(self._engine(tmp, 1), component="listView")
        self.assertTrue(body["error"].startswith("Invalid JSON in config file: JSONDecodeError in "))
        self.assertTrue(body["error"].endswith("person.json"))

    def test_position_reported_at_debug_level_two(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            body, _ = _resolve(self._engine(tmp, 2), component="listView")
        self.assertIn("person.json: ", body["error"])
        self.assertEqual(body["line"], 1)
        self.assertIn("column", body)


if __name__ == "__main__":
    unittest.main()
