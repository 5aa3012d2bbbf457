"""
Tests for the analysis orchestrator.

The fake Qloo API (conftest.py) stands in for the network. These tests
pin the degradation behaviour: Qloo trouble may cost cultural context,
never the bias analysis itself.
"""

from __future__ import annotations

from dataclasses import replace

import httpx
import pytest

from culturaltruth import engine as engine_module
from culturaltruth.circuit_breaker import CircuitBreaker
from culturaltruth.config import settings
from culturaltruth.engine import create_engine, settle
from culturaltruth.environment import (
    HACKATHON_CONFIG,
    PRODUCTION_CONFIG,
    build_environment,
)
from culturaltruth.errors import (
    ConfigurationError,
    ExternalServiceError,
    FeatureDisabledError,
    ServerError,
    ValidationError,
)
from culturaltruth.mitigation import NO_BIAS_ACTION

from conftest import make_raw_entity

ENTITY_TEXT = 'We love "Stranger Things" and Netflix Originals, we want young guys.'
SCENARIO_A = "We're looking for young, energetic guys... Native English speakers preferred."
SCENARIO_B = "Our team is looking for qualified, experienced engineers."


class TestSettle:

    @pytest.mark.asyncio
    async def test_partitions_tolerated_failures(self):
        async def ok(v):
            return v

        async def bad():
            raise ServerError("down", 500)

        successes, failures = await settle([ok(1), bad(), ok(2)])
        assert successes == [1, 2]
        assert len(failures) == 1
        assert isinstance(failures[0], ExternalServiceError)

    @pytest.mark.asyncio
    async def test_reraises_unexpected(self):
        async def boom():
            raise KeyError("x")

        with pytest.raises(KeyError):
            await settle([boom()])


class TestAnalyzeContent:

    @pytest.mark.asyncio
    async def test_scenario_b_clean(self, make_engine, fake_qloo):
        engine = make_engine(PRODUCTION_CONFIG)
        result = await engine.analyze_content(SCENARIO_B)
        assert result.findings == ()
        assert result.compliance_score.overall == 100
        assert result.compliance_score.risk_tier == "low"
        assert result.mitigation_actions == (NO_BIAS_ACTION,)
        assert fake_qloo.requests == []

    @pytest.mark.asyncio
    async def test_scenario_a(self, make_engine):
        engine = make_engine(PRODUCTION_CONFIG)
        result = await engine.analyze_content(SCENARIO_A, user_id="u1")
        categories = {f.category for f in result.findings}
        assert {"age_discriminatory", "gender_exclusive"} <= categories
        assert result.compliance_score.overall < 50
        assert result.compliance_score.risk_tier in ("high", "critical")
        assert result.audit_record.user_id == "u1"

    @pytest.mark.asyncio
    async def test_entities_and_demographics(self, make_engine, fake_qloo):
        engine = make_engine(PRODUCTION_CONFIG)
        result = await engine.analyze_content(ENTITY_TEXT)

        names = [e.name for e in result.cultural_entities]
        assert names == ["Stranger Things", "Netflix Originals"]
        assert result.cultural_entities[0].properties == {
            "release_year": 2016, "popularity": 0.88,
        }
        assert [d.demographic for d in result.demographics] == [
            "young_adult", "middle_aged", "senior",
        ]
        assert all(d.confidence == 0.8 for d in result.demographics)
        assert all(d.cultural_relevance == 0.7 for d in result.demographics)

        assert fake_qloo.paths().count("/search") == 2
        assert fake_qloo.paths().count("/v2/insights/") == 3
        assert result.audit_record.external_call_count == 5
        assert result.audit_record.cache_hit_count == 0
        assert set(result.audit_record.referenced_entity_ids) == {
            "id-stranger-things", "id-netflix-originals",
        }

    @pytest.mark.asyncio
    async def test_demographics_off_in_hackathon(self, make_engine, fake_qloo):
        engine = make_engine(HACKATHON_CONFIG)
        result = await engine.analyze_content(ENTITY_TEXT)
        assert result.demographics is None
        assert "/v2/insights/" not in fake_qloo.paths()

    @pytest.mark.asyncio
    async def test_caller_can_skip_demographics(self, make_engine, fake_qloo):
        engine = make_engine(PRODUCTION_CONFIG)
        result = await engine.analyze_content(ENTITY_TEXT, include_demographics=False)
        assert result.demographics is None
        assert "/v2/insights/" not in fake_qloo.paths()

    @pytest.mark.asyncio
    async def test_second_run_hits_cache(self, make_engine, fake_qloo):
        engine = make_engine(HACKATHON_CONFIG)
        await engine.analyze_content(ENTITY_TEXT)
        requests_after_first = len(fake_qloo.requests)

        second = await engine.analyze_content(ENTITY_TEXT)
        assert len(fake_qloo.requests) == requests_after_first
        assert second.audit_record.cache_hit_count == 1
        assert second.audit_record.external_call_count == 0
        assert len(second.cultural_entities) == 2

    @pytest.mark.asyncio
    async def test_cached_entities_are_copies(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        first = await engine.analyze_content(ENTITY_TEXT)
        first.cultural_entities[0].properties["popularity"] = 0.0
        second = await engine.analyze_content(ENTITY_TEXT)
        assert second.cultural_entities[0].properties["popularity"] == 0.88

    @pytest.mark.asyncio
    async def test_partial_lookup_failure(self, make_engine, fake_qloo):
        fake_qloo.fail_queries["Netflix Originals"] = 500
        engine = make_engine(HACKATHON_CONFIG)
        result = await engine.analyze_content(ENTITY_TEXT)

        assert [e.name for e in result.cultural_entities] == ["Stranger Things"]
        assert result.findings
        assert result.audit_record.external_call_count == 2
        assert result.audit_record.event_type == "analysis"

    @pytest.mark.asyncio
    async def test_total_lookup_failure_not_cached(self, make_engine, fake_qloo):
        fake_qloo.fail_queries["Stranger Things"] = 429
        fake_qloo.fail_queries["Netflix Originals"] = 429
        engine = make_engine(HACKATHON_CONFIG)
        result = await engine.analyze_content(ENTITY_TEXT)

        assert result.cultural_entities == ()
        assert len(engine.entity_cache) == 0
        assert result.compliance_score.overall < 100

    @pytest.mark.asyncio
    async def test_open_breaker_degrades_to_bias_only(self, make_engine, fake_qloo):
        breaker = CircuitBreaker(failure_threshold=1)
        breaker.record_failure()
        engine = make_engine(PRODUCTION_CONFIG, breaker=breaker)

        result = await engine.analyze_content(ENTITY_TEXT)

        assert fake_qloo.requests == []
        assert result.cultural_entities == ()
        assert result.demographics is None
        assert result.findings
        assert result.audit_record.external_call_count == 0

    @pytest.mark.asyncio
    async def test_system_error_is_audited_and_raised(self, make_engine, fake_qloo):
        fake_qloo.raise_on_path["/search"] = RuntimeError("boom")
        engine = make_engine(HACKATHON_CONFIG)

        with pytest.raises(RuntimeError):
            await engine.analyze_content(ENTITY_TEXT, user_id="u9")

        record = engine.audit_log.snapshot()[-1]
        assert record.event_type == "analysis_error"
        assert record.user_id == "u9"
        assert record.findings == ()
        assert record.compliance_score.overall == 0
        assert record.compliance_score.risk_tier == "critical"
        assert record.compliance_score.triggered_regulations == ("SYSTEM_ERROR",)
        assert record.mitigation_actions == ("System error occurred during analysis",)

    @pytest.mark.asyncio
    async def test_invalid_input_not_audited(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG, max_content_length=100)
        with pytest.raises(ValidationError):
            await engine.analyze_content(None)
        with pytest.raises(ValidationError):
            await engine.analyze_content("x" * 101)
        assert engine.audit_log.count == 0

    @pytest.mark.asyncio
    async def test_empty_text(self, make_engine):
        engine = make_engine(PRODUCTION_CONFIG)
        result = await engine.analyze_content("")
        assert result.findings == ()
        assert result.compliance_score.overall == 100
        assert engine.audit_log.count == 1

    @pytest.mark.asyncio
    async def test_audit_record_contents(self, make_engine):
        engine = make_engine(PRODUCTION_CONFIG)
        text = "young " * 300
        result = await engine.analyze_content(text)
        record = result.audit_record
        assert len(record.truncated_content) == 1000
        assert len(record.content_digest) == 64
        assert record.session_id == result.session_id
        assert len(result.session_id) == 16
        assert engine.audit_log.verify_chain()["verified"] is True

    @pytest.mark.asyncio
    async def test_session_ids_unique(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        a = await engine.analyze_content("hello")
        b = await engine.analyze_content("hello")
        assert a.session_id != b.session_id


class TestBatch:

    @pytest.mark.asyncio
    async def test_scenario_e_two_rounds(self, make_engine):
        slept = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        engine = make_engine(HACKATHON_CONFIG, batch_delay=1.0, sleep=fake_sleep)
        items = [{"content": f"item {i} wants young people"} for i in range(7)]
        result = await engine.batch_analyze(items)

        assert result.rounds == 2
        assert slept == [1.0]
        assert [r.index for r in result.results] == list(range(7))
        assert result.total_processed == 7
        assert engine.audit_log.count == 7

    @pytest.mark.asyncio
    async def test_item_failure_becomes_processing_error(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        result = await engine.batch_analyze([
            {"content": "a clean sentence"},
            {"content": None},
        ])
        ok, failed = result.results
        assert ok.error is None
        assert ok.compliance_score.overall == 100
        assert failed.error
        assert failed.compliance_score.triggered_regulations == ("PROCESSING_ERROR",)
        assert failed.compliance_score.risk_tier == "critical"
        assert result.average_compliance_score == 50
        assert result.critical_issues_count == 0

    @pytest.mark.asyncio
    async def test_batch_limits(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG, max_batch_size=3)
        with pytest.raises(ValidationError):
            await engine.batch_analyze([])
        with pytest.raises(ValidationError):
            await engine.batch_analyze([{"content": "x"}] * 4)

    @pytest.mark.asyncio
    async def test_batch_feature_gate(self, make_engine):
        config = build_environment("Hackathon", enabled_features={"batchProcessing": False})
        engine = make_engine(config)
        with pytest.raises(FeatureDisabledError):
            await engine.batch_analyze([{"content": "x"}])

    @pytest.mark.asyncio
    async def test_to_dict_shape(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        data = (await engine.batch_analyze([{"content": "young"}])).to_dict()
        assert set(data) == {"results", "summary"}
        assert data["summary"]["rounds"] == 1


class TestSignalsAndEnvironment:

    def test_record_signal(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        assert engine.record_signal("e1", "like", "sess-1", user_id="u1", value=4) is True
        record = engine.audit_log.snapshot()[-1]
        assert record.event_type == "signal"
        assert record.referenced_entity_ids == ("e1",)
        assert record.compliance_score.overall == 100
        assert record.mitigation_actions == ("Real-time signal processed: like",)
        assert engine.generate_compliance_report()["total_analyses"] == 0

    def test_signal_keeps_location_and_metadata(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        engine.record_signal(
            "e1", "view", "sess", value=2, location="Berlin", metadata={"source": "web"},
        )
        record = engine.audit_log.snapshot()[-1]
        assert record.signal == {
            "value": 2, "location": "Berlin", "metadata": {"source": "web"},
        }
        assert record.to_dict()["signal"]["location"] == "Berlin"
        assert engine.audit_log.verify_chain()["verified"] is True

    def test_signal_without_ids_rejected(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        assert engine.record_signal("", "view", "sess") is False
        assert engine.audit_log.count == 0

    def test_signal_validation(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        with pytest.raises(ValidationError):
            engine.record_signal("e1", "stare", "sess")
        with pytest.raises(ValidationError):
            engine.record_signal("e1", "rating", "sess", value=7)

    def test_signal_feature_gate(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        engine.configure_environment("Hackathon", enabled_features={"realtimeSignals": False})
        with pytest.raises(FeatureDisabledError):
            engine.record_signal("e1", "view", "sess")

    @pytest.mark.asyncio
    async def test_environment_switch_changes_endpoint_and_rules(self, make_engine, fake_qloo):
        engine = make_engine(HACKATHON_CONFIG)
        lenient = await engine.analyze_content("young guys")
        assert {f.rule_id for f in lenient.findings} == {"age_proxy"}

        config = engine.configure_environment("Production")
        assert engine.get_environment() is config
        assert config.detection_level == "strict"

        strict = await engine.analyze_content("young guys at Netflix Originals")
        assert {"age_proxy", "guys_only"} <= {f.rule_id for f in strict.findings}
        assert fake_qloo.requests[-1].url.host == "api.qloo.com"

    def test_set_environment_rejects_non_config(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        with pytest.raises(ValidationError):
            engine.set_environment({"mode": "Production"})

    def test_report_rejects_bad_days(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        with pytest.raises(ValidationError):
            engine.generate_compliance_report(days_back=0)
        with pytest.raises(ValidationError):
            engine.generate_compliance_report(days_back=1_000_000)


class TestDirectLookups:

    @pytest.mark.asyncio
    async def test_search_cached(self, make_engine, fake_qloo):
        engine = make_engine(HACKATHON_CONFIG)
        first = await engine.search_cultural_entities("Dune", limit=5)
        second = await engine.search_cultural_entities("Dune", limit=5)
        assert first[0].name == "Dune"
        assert first == second
        assert fake_qloo.paths().count("/search") == 1

    @pytest.mark.asyncio
    async def test_search_surfaces_errors(self, make_engine, fake_qloo):
        fake_qloo.fail_queries["Dune"] = 503
        engine = make_engine(HACKATHON_CONFIG)
        with pytest.raises(ServerError):
            await engine.search_cultural_entities("Dune")

    @pytest.mark.asyncio
    async def test_search_requires_query(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        with pytest.raises(ValidationError):
            await engine.search_cultural_entities("  ")

    @pytest.mark.asyncio
    async def test_cultural_trends_limit_capped(self, make_engine, fake_qloo):
        engine = make_engine(HACKATHON_CONFIG)
        entities = await engine.get_cultural_trends("urn:entity:movie", limit=500)
        assert [e.name for e in entities] == ["Arrival", "Dune"]
        assert fake_qloo.requests[-1].url.params["take"] == "50"

    @pytest.mark.asyncio
    async def test_trends_feature_gate(self, make_engine):
        config = build_environment("Production", enabled_features={"trends": False})
        engine = make_engine(config)
        with pytest.raises(FeatureDisabledError):
            await engine.get_cultural_trends("urn:entity:movie")

    @pytest.mark.asyncio
    async def test_geospatial_gated_in_hackathon(self, make_engine):
        engine = make_engine(HACKATHON_CONFIG)
        with pytest.raises(FeatureDisabledError):
            await engine.get_geospatial_insights({"filter.type": "urn:entity:place"})

    @pytest.mark.asyncio
    async def test_geospatial_in_production(self, make_engine, fake_qloo):
        engine = make_engine(PRODUCTION_CONFIG)
        entities = await engine.get_geospatial_insights({
            "filter.type": "urn:entity:place", "filter.location": "POINT(-73.99 40.73)",
        })
        assert len(entities) == 2
        assert fake_qloo.requests[-1].url.path == "/geospatial"

    @pytest.mark.asyncio
    async def test_demographic_insights_need_signal(self, make_engine):
        engine = make_engine(PRODUCTION_CONFIG)
        with pytest.raises(ValidationError):
            await engine.get_demographic_insights({"filter.type": "urn:entity:movie"})
        entities = await engine.get_demographic_insights({
            "filter.type": "urn:entity:movie", "signal.demographics.age": "senior",
        })
        assert len(entities) == 2

    @pytest.mark.asyncio
    async def test_trending_entities(self, make_engine, fake_qloo):
        engine = make_engine(HACKATHON_CONFIG)
        entities = await engine.get_trending_entities("urn:entity:artist")
        assert len(entities) == 2
        assert fake_qloo.requests[-1].url.params["type"] == "urn:entity:artist"

    @pytest.mark.asyncio
    async def test_compare_audiences(self, make_engine, fake_qloo):
        fake_qloo.groups = {
            "a1": [make_raw_entity("A1", "a1", popularity=0.8, tags=["drama", "comedy"])],
            "a2": [make_raw_entity("A2", "a2", popularity=0.6, tags=["drama"])],
            "b1": [make_raw_entity("B1", "b1", popularity=0.7, tags=["drama"])],
        }
        engine = make_engine(PRODUCTION_CONFIG)
        comparison = await engine.compare_audiences(["a1", "a2"], ["b1"])

        assert comparison["group_a"]["average_popularity"] == pytest.approx(0.7)
        assert comparison["group_a"]["common_tags"] == ["drama", "comedy"]
        assert comparison["group_b"]["common_tags"] == ["drama"]
        assert comparison["popularity_delta"] == pytest.approx(0.0)
        assert comparison["overlap_percentage"] == 50
        assert comparison["cultural_affinity_score"] == 100
        assert comparison["recommendations"] == [
            "Strong cultural affinity - excellent cross-promotion potential",
        ]
        # Tags are for comparison only
        assert "tags" not in comparison["group_a"]["entities"][0]["properties"]

    @pytest.mark.asyncio
    async def test_compare_requires_both_groups(self, make_engine):
        engine = make_engine(PRODUCTION_CONFIG)
        with pytest.raises(ValidationError):
            await engine.compare_audiences([], ["b1"])

    @pytest.mark.asyncio
    async def test_compare_entities(self, make_engine, fake_qloo):
        engine = make_engine(PRODUCTION_CONFIG)
        entities = await engine.compare_entities(["a1", " a2 "], ["b1"])
        assert [e.name for e in entities] == ["Arrival", "Dune"]
        assert "tags" not in entities[0].properties
        request = fake_qloo.requests[-1]
        assert request.url.path == "/v2/insights/compare"
        assert request.url.params["entities_a"] == "a1,a2"
        assert request.url.params["entities_b"] == "b1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("group_a,group_b", [
        ([], ["b1"]),
        (["a1"], []),
        ("a1", ["b1"]),
        (["a1", ""], ["b1"]),
        (["a1", None], ["b1"]),
    ])
    async def test_compare_entities_validates_ids(self, make_engine, fake_qloo, group_a, group_b):
        engine = make_engine(PRODUCTION_CONFIG)
        with pytest.raises(ValidationError):
            await engine.compare_entities(group_a, group_b)
        assert fake_qloo.requests == []

    def test_system_status(self, make_engine):
        engine = make_engine(PRODUCTION_CONFIG)
        status = engine.system_status()
        assert status["environment"]["mode"] == "Production"
        assert status["qloo"]["circuit_breaker"]["state"] == "closed"
        assert status["audit"]["records"] == 0
        assert "hit_rate" in status["entity_cache"]


class TestCreateEngine:

    @pytest.mark.asyncio
    async def test_builds_from_settings(self, fake_qloo):
        engine = create_engine(
            api_key="k", mode="Production", transport=httpx.MockTransport(fake_qloo),
        )
        assert engine.get_environment().mode == "Production"
        assert engine.client.circuit_breaker.failure_threshold == settings.CIRCUIT_BREAKER_THRESHOLD
        entities = await engine.search_cultural_entities("Dune")
        assert entities[0].name == "Dune"
        await engine.aclose()

    def test_missing_key_fails_fast(self, monkeypatch):
        monkeypatch.setattr(engine_module, "settings", replace(settings, QLOO_API_KEY=""))
        with pytest.raises(ConfigurationError):
            create_engine()
