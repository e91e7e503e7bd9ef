from api_discovery.parser.base import Observation
from api_discovery.parser.filters import REDACTED, is_api_request, prepare, redact_headers


class TestIsApiRequest:
    def test_api_prefix(self):
        assert is_api_request(Observation(url="https://a.com/api/users"))

    def test_version_prefix(self):
        assert is_api_request(Observation(url="https://a.com/v2/items"))

    def test_json_content_type(self):
        assert is_api_request(Observation(url="https://a.com/data", contentType="application/json"))

    def test_static_asset(self):
        assert not is_api_request(Observation(url="https://a.com/logo.png", contentType="image/png"))


class TestRedactHeaders:
    def test_sensitive_values_replaced(self):
        headers = redact_headers({"Authorization": "Bearer x", "Cookie": "a=b", "Accept": "*/*"})
        assert headers == {"Authorization": REDACTED, "Cookie": REDACTED, "Accept": "*/*"}


class TestPrepare:
    def test_redacts_without_mutating_input(self):
        obs = Observation(url="https://a.com/api/x", headers={"Authorization": "Bearer x"})
        [prepared] = prepare([obs])
        assert prepared.headers["Authorization"] == REDACTED
        assert obs.headers["Authorization"] == "Bearer x"

    def test_api_only_keeps_order(self):
        observations = [
            Observation(url="https://a.com/api/1"),
            Observation(url="https://a.com/logo.png"),
            Observation(url="https://a.com/api/2"),
        ]
        result = prepare(observations, api_only=True)
        assert [o.url for o in result] == ["https://a.com/api/1", "https://a.com/api/2"]

    def test_no_redact(self):
        obs = Observation(url="https://a.com/api/x", headers={"Authorization": "Bearer x"})
        assert prepare([obs], redact=False)[0].headers["Authorization"] == "Bearer x"
