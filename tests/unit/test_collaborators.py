"""
Tests for the LLM-backed collaborators.
"""

from unittest.mock import AsyncMock

import pytest

from pm_tracker.core.constants import CategorizationRecommendation, PlatformId, Priority
from pm_tracker.core.exceptions import LLMError, MalformedResponseError, TimeoutError
from pm_tracker.domain.planning import Epic, Feature, Project
from pm_tracker.domain.story import ExistingStory
from pm_tracker.domain.task import GeneratedTask, IntegrationStrategy, PlatformSpecs, SpecStory
from pm_tracker.llm.collaborators import (
    FeatureGenerator,
    StoryCategorizer,
    StoryClassifier,
    StoryGenerator,
    TaskSpecGenerator,
    merge_definitions_of_done,
    overall_confidence,
)


def story(narrative="As a member, I want to pay online so that I skip the queue", **fields):
    return {"narrative": narrative, "persona": "member", "priority": "P1", **fields}


@pytest.fixture
def project():
    return Project(id="proj-1", name="Member Portal")


@pytest.fixture
def epic():
    return Epic(id="epic-1", project_id="proj-1", name="Payments")


@pytest.fixture
def features():
    return [
        Feature(id="feat-1", project_id="proj-1", epic_id="epic-1", name="Checkout"),
        Feature(id="feat-2", project_id="proj-1", epic_id="epic-1", name="Refunds"),
    ]


class TestStoryGenerator:

    @pytest.fixture
    def generator(self):
        return StoryGenerator(AsyncMock(), min_stories=2, max_stories=3)

    def test_parse_valid(self, generator):
        result = generator.parse({
            "stories": [story(), story(acceptance_criteria=["Card form validates"])],
            "feature_context": "Covers checkout",
        })

        assert len(result.stories) == 2
        assert result.stories[1].acceptance_criteria == ("Card form validates",)
        assert result.feature_context == "Covers checkout"

    @pytest.mark.parametrize("count", [1, 4])
    def test_parse_rejects_story_count(self, generator, count):
        with pytest.raises(MalformedResponseError):
            generator.parse({"stories": [story() for _ in range(count)]})

    def test_parse_rejects_non_narrative_form(self, generator):
        with pytest.raises(MalformedResponseError) as exc_info:
            generator.parse({"stories": [story(), story(narrative="Pay online quickly")]})

        assert exc_info.value.details["missing"] == ["as a", "i want"]

    def test_parse_rejects_bad_priority(self, generator):
        with pytest.raises(MalformedResponseError):
            generator.parse({"stories": [story(), story(priority="P9")]})

    def test_parse_rejects_missing_key(self, generator):
        with pytest.raises(MalformedResponseError):
            generator.parse([story(), story()])

    @pytest.mark.asyncio
    async def test_generate_diff_mode(self, generator, feature_models, llm_reply):
        feature, epic, project = feature_models
        generator.client.complete_json.return_value = llm_reply({"stories": [story(), story()]})
        existing = [ExistingStory(id="US-001", narrative="As a member, I want a receipt")]

        result = await generator.generate(feature, epic, project, existing=existing)

        assert result.tokens_used == 150
        prompt = generator.client.complete_json.await_args.args[1]
        assert "As a member, I want a receipt" in prompt
        assert "Checkout" in prompt

    @pytest.fixture
    def feature_models(self, features, epic, project):
        return features[0], epic, project


class TestStoryClassifier:

    @pytest.fixture
    def classifier(self):
        return StoryClassifier(AsyncMock())

    def test_parse_object(self, classifier):
        verdicts = classifier.parse({"verdicts": [{"index": 0, "action": "create_new"}]})

        assert verdicts[0].index == 0
        assert verdicts[0].action == "create_new"

    def test_parse_bare_list(self, classifier):
        verdicts = classifier.parse([{"index": 1, "action": "skip", "existing_story_id": "US-001"}])

        assert verdicts[0].existing_story_id == "US-001"

    @pytest.mark.parametrize("data", ["nope", {"results": []}, [{"action": "skip"}]])
    def test_parse_rejects_wrong_shape(self, classifier, data):
        with pytest.raises(MalformedResponseError):
            classifier.parse(data)


class TestStoryCategorizer:

    @pytest.fixture
    def categorizer(self):
        return StoryCategorizer(AsyncMock())

    def test_existing_feature_gets_name(self, categorizer, features):
        result = categorizer.parse(
            {
                "recommendation": "existing",
                "confidence": 85,
                "suggested_feature_id": "feat-2",
                "alternatives": [
                    {"feature_id": "feat-1", "confidence": 30},
                    {"feature_id": "feat-99", "confidence": 20},
                ],
            },
            features,
        )

        assert result.recommendation == CategorizationRecommendation.EXISTING
        assert result.suggested_feature_name == "Refunds"
        assert [a.feature_id for a in result.alternatives] == ["feat-1"]

    def test_rejects_feature_outside_epic(self, categorizer, features):
        with pytest.raises(MalformedResponseError):
            categorizer.parse(
                {"recommendation": "existing", "confidence": 70, "suggested_feature_id": "feat-99"},
                features,
            )

    def test_new_requires_suggestion(self, categorizer, features):
        with pytest.raises(MalformedResponseError):
            categorizer.parse({"recommendation": "new", "confidence": 60}, features)

    def test_new_feature(self, categorizer, features):
        result = categorizer.parse(
            {
                "recommendation": "new",
                "confidence": 60,
                "new_feature_suggestion": {"name": "Payment Plans", "priority": "P2"},
            },
            features,
        )

        assert result.new_feature_suggestion.name == "Payment Plans"
        assert result.new_feature_suggestion.priority == Priority.P2

    def test_rejects_confidence_out_of_range(self, categorizer, features):
        with pytest.raises(MalformedResponseError):
            categorizer.parse({"recommendation": "none", "confidence": 150}, features)

    @pytest.mark.asyncio
    async def test_categorize_lists_features_in_prompt(self, categorizer, epic, features, llm_reply):
        categorizer.client.complete_json.return_value = llm_reply({"recommendation": "none", "confidence": 10})

        result = await categorizer.categorize(epic, features, "As a member, I want refunds", "member")

        assert result.recommendation == CategorizationRecommendation.NONE
        prompt = categorizer.client.complete_json.await_args.args[1]
        assert "[feat-1] Checkout" in prompt
        assert "[feat-2] Refunds" in prompt


STRATEGY = {
    "api_contracts": [{"endpoint": "/api/payments", "method": "POST", "platforms": ["A", "B"]}],
    "shared_types": [{"name": "Payment", "definition": "interface Payment { id: string }", "used_by": ["A", "B"]}],
    "integration_sequence": [
        {"order": 1, "platform": "A", "dependency": None, "deliverable": "Payments API live"},
        {"order": 2, "platform": "B", "dependency": "A", "deliverable": "Pay from the app"},
    ],
    "integration_tests": [
        {"name": "Pay and see receipt", "platforms_involved": ["A", "B"], "test_scenario": "..."},
    ],
}


class TestTaskSpecGenerator:

    @pytest.fixture
    def generator(self):
        return TaskSpecGenerator(AsyncMock())

    @pytest.fixture
    def spec_story(self):
        return SpecStory(narrative="As a member, I want to pay online so that I skip the queue")

    @pytest.fixture
    def replies(self, llm_reply):
        """Answer per platform from the prompt, and the strategy for the strategist."""
        platform_tasks = {
            "A": {
                "tasks": [
                    {
                        "name": "Payment API",
                        "platform": "A",
                        "priority": "P0",
                        "confidence": "HIGH",
                        "outputs": ["POST /api/payments"],
                        "definition_of_done": ["Endpoint documented", "Unit tests pass"],
                    },
                    {
                        "name": "Fraud rules",
                        "platform": "A",
                        "confidence": "LOW",
                        "definition_of_done": ["Unit tests pass"],
                    },
                ],
                "assumptions": [{"assumption": "Stripe is used", "confidence": "LOW"}],
            },
            "B": {
                "tasks": [
                    {
                        "name": "Payment screen",
                        "platform": "B",
                        "confidence": "HIGH",
                        "dependencies": ["Payment API"],
                        "definition_of_done": ["Screen reviewed"],
                    },
                ],
                "assumptions": None,
            },
        }

        def reply(system, prompt, collaborator="LLM", max_tokens=None):
            if collaborator == TaskSpecGenerator.integration_name:
                return llm_reply(STRATEGY, input_tokens=300, output_tokens=100)
            platform = "A" if "Platform: A:" in prompt else "B"
            return llm_reply(platform_tasks[platform], input_tokens=1000, output_tokens=500)

        return reply

    def test_parse_pins_tasks_to_the_platform(self, generator):
        data = {
            "tasks": [
                {"name": "api", "platform": "A"},
                {"name": "screen", "platform": "B"},
                {"name": "infra", "platform": "🅰️"},
            ],
        }

        specs = generator.parse(data, PlatformId.A)

        assert [t.platform for t in specs.tasks] == [PlatformId.A] * 3

    def test_parse_accepts_null_lists(self, generator):
        specs = generator.parse(
            {"tasks": [{"name": "api", "dependencies": None, "outputs": None}], "assumptions": None},
            PlatformId.A,
        )

        assert specs.tasks[0].dependencies == []
        assert specs.tasks[0].outputs == []
        assert specs.assumptions == []

    @pytest.mark.parametrize(
        "data",
        [{"items": []}, {"tasks": [{"platform": "A"}]}, {"tasks": [{"name": "api", "confidence": "SURE"}]}],
    )
    def test_parse_rejects_malformed_tasks(self, generator, data):
        with pytest.raises(MalformedResponseError):
            generator.parse(data, PlatformId.A)

    @pytest.mark.asyncio
    async def test_single_platform(self, generator, spec_story, replies):
        generator.client.complete_json.side_effect = replies

        specs = await generator.generate(spec_story, [PlatformId.A], additional_context="Use Stripe")

        assert generator.client.complete_json.await_count == 1
        assert specs.tokens_used == 1500
        assert [t.name for t in specs.tasks] == ["Payment API", "Fraud rules"]
        assert specs.tasks[0].priority == Priority.P0
        assert specs.integration_strategy is None
        assert specs.definition_of_done.integration_dod is None
        assert specs.overall_confidence == 70
        prompt = generator.client.complete_json.await_args.args[1]
        assert "Backend" in prompt
        assert "Additional context: Use Stripe" in prompt

    @pytest.mark.asyncio
    async def test_platforms_are_generated_separately(self, generator, spec_story, replies):
        generator.client.complete_json.side_effect = replies

        specs = await generator.generate(spec_story, [PlatformId.A, PlatformId.B])

        calls = generator.client.complete_json.await_args_list
        assert [c.kwargs["collaborator"] for c in calls] == [
            TaskSpecGenerator.name,
            TaskSpecGenerator.name,
            TaskSpecGenerator.integration_name,
        ]
        assert "Platform: A:" in calls[0].args[1]
        assert "Platform: B:" in calls[1].args[1]
        assert "- Payment API: " in calls[2].args[1]
        assert "- POST /api/payments" in calls[2].args[1]

        assert [t.platform for t in specs.tasks] == [PlatformId.A, PlatformId.A, PlatformId.B]
        assert [a.assumption for a in specs.assumptions] == ["Stripe is used"]
        assert specs.tokens_used == 3400
        assert specs.overall_confidence == 77
        assert specs.integration_strategy.api_contracts[0].endpoint == "/api/payments"

        dod = specs.definition_of_done
        assert [(d.platform, d.platform_name) for d in dod.platform_dod] == [
            (PlatformId.A, "Backend"),
            (PlatformId.B, "Mobile App"),
        ]
        assert dod.platform_dod[0].checklist == ["Endpoint documented", "Unit tests pass"]
        assert dod.integration_dod.description == "Cross-platform verification (Backend ↔ Mobile App)"
        assert dod.integration_dod.checklist[0] == "E2E: Pay and see receipt"
        assert len(dod.integration_dod.checklist) == 4

    @pytest.mark.asyncio
    async def test_integration_strategy_failure_is_tolerated(self, generator, spec_story, replies):
        def reply(system, prompt, collaborator="LLM", max_tokens=None):
            if collaborator == TaskSpecGenerator.integration_name:
                raise LLMError("HTTP 529")
            return replies(system, prompt, collaborator, max_tokens)

        generator.client.complete_json.side_effect = reply

        specs = await generator.generate(spec_story, [PlatformId.A, PlatformId.B])

        assert len(specs.tasks) == 3
        assert specs.integration_strategy is None
        assert specs.definition_of_done.integration_dod is None
        assert specs.tokens_used == 3000

    @pytest.mark.asyncio
    async def test_platform_failure_propagates(self, generator, spec_story, replies):
        def reply(system, prompt, collaborator="LLM", max_tokens=None):
            if "Platform: B:" in prompt:
                raise TimeoutError("llm_completion", 120)
            return replies(system, prompt, collaborator, max_tokens)

        generator.client.complete_json.side_effect = reply

        with pytest.raises(TimeoutError):
            await generator.generate(spec_story, [PlatformId.A, PlatformId.B])

    @pytest.mark.asyncio
    async def test_no_platforms(self, generator, spec_story):
        specs = await generator.generate(spec_story, [])

        assert specs.tasks == []
        assert specs.overall_confidence == 0
        generator.client.complete_json.assert_not_awaited()


class TestSpecAssembly:

    @pytest.mark.parametrize(
        "confidences, expected",
        [
            ([], 0),
            (["HIGH", "HIGH", "LOW"], 77),
            (["HIGH"] * 5 + ["MEDIUM"] * 3, 83),
            (["LOW", "LOW"], 50),
        ],
    )
    def test_overall_confidence(self, confidences, expected):
        tasks = [
            GeneratedTask(name=f"task {i}", platform="A", confidence=c)
            for i, c in enumerate(confidences)
        ]

        assert overall_confidence(tasks) == expected

    def test_single_platform_has_no_integration_checklist(self):
        specs = PlatformSpecs(tasks=[GeneratedTask(name="api", platform="A", definition_of_done=["Done"])])

        dod = merge_definitions_of_done([(PlatformId.A, specs)], IntegrationStrategy.model_validate(STRATEGY))

        assert dod.platform_dod[0].checklist == ["Done"]
        assert dod.integration_dod is None


class TestFeatureGenerator:

    @pytest.fixture
    def generator(self):
        return FeatureGenerator(AsyncMock())

    @pytest.fixture
    def rich_epic(self):
        return Epic(
            id="epic-1",
            project_id="proj-1",
            name="Payments",
            description="Paying for things",
            feature_areas=["Checkout", "Refunds"],
            business_objectives=["Fewer front desk payments"],
            success_metrics=["80% of renewals in the app"],
        )

    def test_prompt_lists_epic_context(self, generator, rich_epic):
        prompt = generator.build_prompt(rich_epic)

        assert "Epic: Payments" in prompt
        assert "Feature areas:\n- Checkout\n- Refunds" in prompt
        assert "- Fewer front desk payments" in prompt
        assert "- 80% of renewals in the app" in prompt
        assert "Technical context" not in prompt

    @pytest.mark.parametrize("data", [{"reasoning": "..."}, {"features": []}, {"features": [{"priority": "P1"}]}])
    def test_rejects_malformed_features(self, generator, data):
        with pytest.raises(MalformedResponseError):
            generator.parse(data)

    @pytest.mark.asyncio
    async def test_generate(self, generator, rich_epic, llm_reply):
        generator.client.complete_json.return_value = llm_reply(
            {
                "features": [
                    {"name": "Card Checkout", "description": "Pay by card", "priority": "P0", "rationale": "Core"},
                    {"name": "Refund Requests", "priority": "P2"},
                ],
                "reasoning": "One feature per area",
                "used_fallback": True,
            }
        )

        result = await generator.generate(rich_epic)

        assert [f.name for f in result.features] == ["Card Checkout", "Refund Requests"]
        assert result.features[1].priority == Priority.P2
        assert result.used_fallback is False
        assert result.tokens_used == 150
