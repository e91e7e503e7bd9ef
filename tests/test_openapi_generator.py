import json
from datetime import datetime, timezone
from pathlib import Path

from api_discovery.analyzer.patterns import analyze
from api_discovery.generator.export import to_json
from api_discovery.generator.openapi import (
    SynthesisContext,
    SynthesisOptions,
    operation_id_base,
    schema_name,
    status_description,
    synthesize,
)
from api_discovery.generator.validator import validate_document
from api_discovery.parser.base import Observation
from api_discovery.parser.records import parse_observations

FIXTURES = Path(__file__).parent / "fixtures"


def _obs(url: str, method: str = "GET", status: int | None = 200, **kwargs) -> Observation:
    return Observation(url=url, method=method, status=status, contentType="application/json", **kwargs)


class TestEmptyInput:
    def test_minimal_document(self):
        doc = synthesize([]).to_dict()
        assert doc["openapi"] == "3.0.3"
        assert doc["paths"] == {}
        assert doc["components"]["schemas"] == {}
        assert doc["servers"] == [{"url": "https://example.com"}]
        assert doc["tags"] == []
        assert doc["info"]["title"] == "Discovered API"
        assert doc["info"]["version"] == "0.1.0"
        assert validate_document(doc) == []


class TestScenarios:
    def test_numeric_ids_collapse_to_one_operation(self):
        doc = synthesize([_obs("https://api.x.com/users/42"), _obs("https://api.x.com/users/43")]).to_dict()
        assert list(doc["paths"]) == ["/users/{id}"]
        assert list(doc["paths"]["/users/{id}"]) == ["get"]
        op = doc["paths"]["/users/{id}"]["get"]
        assert op["operationId"] == "getUsers"
        [param] = op["parameters"]
        assert param["name"] == "id"
        assert param["in"] == "path"
        assert param["required"] is True
        assert param["schema"] == {"type": "integer"}

    def test_mixed_query_values(self):
        doc = synthesize([
            _obs("https://api.x.com/items?page=5"),
            _obs("https://api.x.com/items?page=abc"),
        ]).to_dict()
        [param] = doc["paths"]["/items"]["get"]["parameters"]
        assert param["name"] == "page"
        assert param["in"] == "query"
        assert param["required"] is False
        assert param["schema"] == {"type": "string", "anyOf": [{"type": "number"}, {"type": "string"}]}
        assert [e["value"] for e in param["examples"].values()] == ["5", "abc"]

    def test_query_parameter_descriptor_examples(self):
        doc = synthesize([
            _obs("https://api.x.com/items?page=5"),
            _obs("https://api.x.com/items?page=abc"),
        ])
        [param] = doc.paths["/items"]["get"].parameters
        assert param.any_of == ["number", "string"]
        assert param.examples == ["5", "abc"]

    def test_status_codes_and_class_bucket(self):
        doc = synthesize([
            _obs("https://api.x.com/users/1", status=200),
            _obs("https://api.x.com/users/2", status=404),
        ]).to_dict()
        responses = doc["paths"]["/users/{id}"]["get"]["responses"]
        assert list(responses) == ["200", "404", "4xx"]
        assert responses["404"]["description"] == "Not Found"
        assert responses["4xx"]["content"]["application/json"]["schema"] == {"$ref": "#/components/schemas/Error"}

    def test_bearer_security(self):
        doc = synthesize([
            _obs("https://api.x.com/me", headers={"Authorization": "Bearer xyz"}),
        ]).to_dict()
        assert doc["paths"]["/me"]["get"]["security"] == [{"bearerAuth": []}]
        assert doc["components"]["securitySchemes"]["bearerAuth"]["type"] == "http"
        assert doc["components"]["securitySchemes"]["bearerAuth"]["scheme"] == "bearer"


class TestMerging:
    def test_responses_have_no_duplicate_keys(self):
        doc = synthesize([
            _obs("https://a.com/x/1", status=200),
            _obs("https://a.com/x/2", status=200),
            _obs("https://a.com/x/3", status=403),
            _obs("https://a.com/x/4", status=404),
            _obs("https://a.com/x/5", status=503),
            _obs("https://a.com/x/6", status=500),
        ]).to_dict()
        responses = doc["paths"]["/x/{id}"]["get"]["responses"]
        assert list(responses) == ["200", "403", "4xx", "404", "503", "5xx", "500"]

    def test_query_parameters_unioned(self):
        doc = synthesize([
            _obs("https://a.com/s?q=shoes"),
            _obs("https://a.com/s?page=2"),
            _obs("https://a.com/s?page=3&active=true"),
        ])
        params = {p.name: p for p in doc.paths["/s"]["get"].parameters}
        assert list(params) == ["q", "page", "active"]
        assert params["page"].param_type == "number"
        assert params["page"].examples == ["2"]
        assert params["active"].param_type == "boolean"

    def test_security_from_any_contributing_observation(self):
        doc = synthesize([
            _obs("https://a.com/x"),
            _obs("https://a.com/x", headers={"X-Api-Key": "k"}),
        ])
        assert doc.paths["/x"]["get"].security == [{"bearerAuth": []}]

    def test_no_security_scheme_without_auth_headers(self):
        doc = synthesize([_obs("https://a.com/x", headers={"Accept": "*/*"})]).to_dict()
        assert doc["components"]["securitySchemes"] == {}
        assert doc["paths"]["/x"]["get"]["security"] == []

    def test_content_types_accumulate(self):
        doc = synthesize([
            _obs("https://a.com/x"),
            Observation(url="https://a.com/x", status=200, contentType="text/csv"),
            Observation(url="https://a.com/x", status=200),
        ]).to_dict()
        assert list(doc["paths"]["/x"]["get"]["responses"]["200"]["content"]) == ["application/json", "text/csv"]

    def test_missing_status_goes_to_default(self):
        doc = synthesize([Observation(url="https://a.com/x")]).to_dict()
        assert list(doc["paths"]["/x"]["get"]["responses"]) == ["default"]

    def test_no_content_status(self):
        doc = synthesize([_obs("https://a.com/x/1", method="DELETE", status=204)]).to_dict()
        assert doc["paths"]["/x/{id}"]["delete"]["responses"]["204"] == {"description": "No Content"}

    def test_out_of_range_status_goes_to_default(self):
        doc = synthesize([_obs("https://a.com/x", status=700)]).to_dict()
        assert list(doc["paths"]["/x"]["get"]["responses"]) == ["default"]


class TestPathParameters:
    def test_renamed_parameter_keeps_integer_type(self):
        doc = synthesize([_obs("https://a.com/a/1/object/2")]).to_dict()
        params = doc["paths"]["/a/{id}/object/{objectId}"]["get"]["parameters"]
        assert [(p["name"], p["schema"]) for p in params] == [
            ("id", {"type": "integer"}),
            ("objectId", {"type": "integer"}),
        ]
        assert params[1]["description"] == "Identifier for object"

    def test_literal_brace_segment_is_not_a_parameter(self):
        doc = synthesize([_obs("https://a.com/a/{id}/1")]).to_dict()
        assert list(doc["paths"]) == ["/a/%7Bid%7D/{id}"]
        params = doc["paths"]["/a/%7Bid%7D/{id}"]["get"]["parameters"]
        assert [p["name"] for p in params] == ["id"]
        assert validate_document(doc) == []

    def test_parameter_names_unique_per_operation(self):
        doc = synthesize([_obs("https://a.com/1/2/users/3/507f1f77bcf86cd799439011")]).to_dict()
        for methods in doc["paths"].values():
            names = [p["name"] for p in methods["get"]["parameters"]]
            assert len(names) == len(set(names))
        assert validate_document(doc) == []


class TestNaming:
    def test_method_prefixes(self):
        assert operation_id_base("GET", "/users") == "getUsers"
        assert operation_id_base("POST", "/users") == "createUsers"
        assert operation_id_base("PUT", "/users/{id}") == "updateUsers"
        assert operation_id_base("PATCH", "/users/{id}") == "patchUsers"
        assert operation_id_base("DELETE", "/users/{id}") == "deleteUsers"
        assert operation_id_base("OPTIONS", "/users") == "optionsUsers"

    def test_placeholder_only_template(self):
        assert operation_id_base("GET", "/{id}") == "getId"

    def test_schema_name(self):
        assert schema_name("users") == "Users"
        assert schema_name("user-profile.json") == "UserProfileJson"
        assert schema_name("--") == "Item"

    def test_collisions_suffixed_in_first_seen_order(self):
        doc = synthesize([
            _obs("https://a.com/users/1"),
            _obs("https://a.com/users"),
            _obs("https://a.com/api/users"),
        ])
        ids = [op.operation_id for _, _, op in doc.operations()]
        assert ids == ["getUsers", "getUsers1", "getUsers2"]

    def test_unique_operation_id_lowest_free_suffix(self):
        context = SynthesisContext()
        context.operation_ids.update({"getX", "getX2"})
        assert context.unique_operation_id("getX") == "getX1"
        assert context.unique_operation_id("getX") == "getX3"

    def test_status_description(self):
        assert status_description(200) == "OK"
        assert status_description(299) == "Response"
        assert status_description(None) == "Response not observed"


class TestSchemas:
    def test_input_schema_for_body_methods(self):
        doc = synthesize([_obs("https://a.com/users", method="POST", status=201)]).to_dict()
        op = doc["paths"]["/users"]["post"]
        assert op["requestBody"]["content"]["application/json"]["schema"] == {"$ref": "#/components/schemas/UsersInput"}
        assert set(doc["components"]["schemas"]) == {"Users", "UsersInput"}
        assert doc["components"]["schemas"]["UsersInput"]["required"] == ["name"]

    def test_get_has_no_request_body(self):
        doc = synthesize([_obs("https://a.com/users")]).to_dict()
        assert "requestBody" not in doc["paths"]["/users"]["get"]

    def test_resource_named_error_does_not_clash(self):
        doc = synthesize([
            _obs("https://a.com/error", status=200),
            _obs("https://a.com/x", status=500),
        ]).to_dict()
        assert doc["paths"]["/error"]["get"]["responses"]["200"]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/Error"
        }
        assert doc["paths"]["/x"]["get"]["responses"]["500"]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/Error1"
        }
        assert validate_document(doc) == []


class TestServersAndInfo:
    def test_servers_in_first_seen_order(self):
        doc = synthesize([
            _obs("https://api.x.com/a"),
            _obs("not a url"),
            _obs("https://cdn.x.com/b"),
            _obs("https://api.x.com/c"),
            _obs("http://localhost:8080/d"),
        ]).to_dict()
        assert doc["servers"] == [
            {"url": "https://api.x.com"},
            {"url": "https://cdn.x.com"},
            {"url": "http://localhost:8080"},
        ]

    def test_info_overrides(self):
        doc = synthesize([_obs("https://a.com/x")], {"title": "Shop", "version": None}).to_dict()
        assert doc["info"]["title"] == "Shop"
        assert doc["info"]["version"] == "0.1.0"

    def test_metadata_extension(self):
        options = SynthesisOptions(
            include_metadata=True,
            source_url="https://shop.test/cart",
            generated_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        )
        doc = synthesize([_obs("https://a.com/users/1")], options).to_dict()
        assert doc["x-source-url"] == "https://shop.test/cart"
        meta = doc["x-discovery-metadata"]
        assert meta["totalObservations"] == 1
        assert meta["resourceTypes"] == {"users": 1}
        assert meta["discoveryDate"] == "2024-05-01T00:00:00+00:00"

    def test_precomputed_analysis_is_used(self):
        observations = [_obs("https://a.com/x")]
        options = SynthesisOptions(include_metadata=True, generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        doc = synthesize(observations, options, analysis=analyze(observations)).to_dict()
        assert doc["x-discovery-metadata"]["uniqueHosts"] == ["a.com"]


class TestRobustness:
    def test_malformed_url_skipped(self, caplog):
        doc = synthesize([_obs("not a url"), _obs("https://a.com/x")]).to_dict()
        assert list(doc["paths"]) == ["/x"]
        assert "malformed URL" in caplog.text

    def test_only_malformed_urls(self):
        doc = synthesize([_obs("::::")]).to_dict()
        assert doc["paths"] == {}
        assert doc["servers"] == [{"url": "https://example.com"}]
        assert validate_document(doc) == []

    def test_idempotent(self):
        observations = parse_observations(FIXTURES / "observations.json")
        assert to_json(synthesize(observations)) == to_json(synthesize(observations))

    def test_json_round_trip_refs_resolve(self):
        doc = synthesize(parse_observations(FIXTURES / "observations.json"))
        parsed = json.loads(to_json(doc))
        assert validate_document(parsed) == []

    def test_fixture_document(self):
        doc = synthesize(parse_observations(FIXTURES / "observations.json")).to_dict()
        assert list(doc["paths"]) == ["/api/users/{id}", "/api/users", "/v1/products/{objectId}"]
        assert doc["paths"]["/api/users/{id}"]["get"]["operationId"] == "getUsers"
        assert doc["paths"]["/api/users"]["get"]["operationId"] == "getUsers1"
        assert doc["paths"]["/api/users"]["post"]["operationId"] == "createUsers"
        assert list(doc["paths"]["/v1/products/{objectId}"]["get"]["responses"]) == ["500", "5xx"]
        assert [t["name"] for t in doc["tags"]] == ["api", "users", "v1", "products"]
        assert list(doc["components"]["schemas"]) == ["Users", "UsersInput", "Error"]
        assert "bearerAuth" in doc["components"]["securitySchemes"]
