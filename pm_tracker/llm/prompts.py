"""
Prompt templates for the AI endpoints.

Every template asks for a single JSON document so responses can be parsed
with ``extract_json``.
"""

STORY_GENERATOR_SYSTEM = """You are a senior product manager writing user stories.
Write each story as "As a <persona>, I want <action> so that <benefit>".
Personas: member, admin, staff, business, guest. Priorities: P0, P1, P2.
Respond with JSON only."""

STORY_GENERATOR_PROMPT = """Project: {project_name}
{project_description}

Epic: {epic_name}
{epic_description}

Feature: {feature_name}
{feature_description}

{existing_section}
Write between {min_stories} and {max_stories} user stories that together deliver this feature.
{mode_instructions}
{additional_instructions}
Return:
```json
{{
  "stories": [
    {{
      "narrative": "As a ..., I want ... so that ...",
      "persona": "member",
      "priority": "P1",
      "acceptance_criteria": ["..."],
      "rationale": "..."
    }}
  ],
  "feature_context": "How the stories fulfil the feature",
  "generation_notes": ["..."]
}}
```"""

FULL_MODE_INSTRUCTIONS = "Cover the whole feature."

DIFF_MODE_INSTRUCTIONS = (
    "Only write stories for gaps the existing stories leave open. "
    "Do not restate an existing story."
)

STORY_CLASSIFIER_SYSTEM = """You compare newly drafted user stories with stories that already exist
for the same feature. For each draft decide one action:
- "create_new": no existing story covers it
- "merge_with_existing": it overlaps one existing story; write a merged narrative
- "skip": an existing story already says the same thing
Respond with JSON only."""

STORY_CLASSIFIER_PROMPT = """Feature: {feature_name}
{feature_description}

Existing stories:
{existing_stories}

Drafted stories:
{candidate_stories}

Return one verdict per drafted story, using its index:
```json
{{
  "verdicts": [
    {{
      "index": 0,
      "action": "create_new | merge_with_existing | skip",
      "existing_story_id": "id of the matched existing story, for merge or skip",
      "merged_narrative": "combined narrative, for merge only",
      "reason": "..."
    }}
  ]
}}
```"""

STORY_CATEGORIZER_SYSTEM = """You organise user stories into the features of an epic.
Pick the best matching feature, propose a new feature when none fits, or
answer "none" when the story does not belong to this epic. Respond with JSON only."""

STORY_CATEGORIZER_PROMPT = """Epic: {epic_name}
{epic_description}

Features:
{features}

Story ({persona}): {narrative}
{acceptance_criteria}
Return:
```json
{{
  "recommendation": "existing | new | none",
  "suggested_feature_id": "feature id, when existing",
  "suggested_feature_name": "feature name, when existing",
  "confidence": 0,
  "reasoning": "...",
  "new_feature_suggestion": {{"name": "...", "description": "...", "priority": "P1"}},
  "alternatives": [{{"feature_id": "...", "feature_name": "...", "confidence": 0, "reasoning": "..."}}]
}}
```"""

TASK_SPEC_SYSTEM = """You are a tech lead turning a user story into implementation tasks for one
platform. Name every task uniquely; list the names of tasks it depends on in
"dependencies". Rate your confidence in each task. State the assumptions you
had to make. Respond with JSON only."""

TASK_SPEC_PROMPT = """{hierarchy}
User story ({persona}, {priority}, area: {feature_area}):
{narrative}
{acceptance_criteria}
Platform: {platform}
{additional_context}
Return:
```json
{{
  "tasks": [
    {{
      "name": "...",
      "platform": "{platform_id}",
      "priority": "P1",
      "dependencies": ["other task name"],
      "estimate": "2d",
      "confidence": "HIGH | MEDIUM | LOW",
      "objective": "...",
      "implementation_steps": ["..."],
      "outputs": ["what this task leaves behind, e.g. an endpoint or a screen"],
      "definition_of_done": ["..."],
      "files_to_modify": ["..."],
      "testing_notes": "..."
    }}
  ],
  "assumptions": [
    {{
      "category": "architecture",
      "assumption": "...",
      "confidence": "HIGH | MEDIUM | LOW",
      "rationale": "...",
      "alternatives": ["..."]
    }}
  ]
}}
```"""

INTEGRATION_STRATEGY_SYSTEM = """You are a systems architect. Tasks for several platforms were planned
separately; define the contracts that make them work together. API
contracts must be precise enough that any platform can implement its side
independently. Respond with JSON only."""

INTEGRATION_STRATEGY_PROMPT = """Generate the integration strategy for this multi-platform implementation.

User story:
"{narrative}"

Platform specs:
{platform_summary}
Return:
```json
{{
  "api_contracts": [
    {{
      "endpoint": "/api/...",
      "method": "POST",
      "platforms": ["A", "B"],
      "request_schema": "...",
      "response_schema": "..."
    }}
  ],
  "shared_types": [{{"name": "...", "definition": "...", "used_by": ["A", "B"]}}],
  "integration_sequence": [
    {{"order": 1, "platform": "A", "dependency": null, "deliverable": "..."}}
  ],
  "integration_tests": [
    {{"name": "...", "platforms_involved": ["A", "B"], "test_scenario": "..."}}
  ]
}}
```"""

FEATURE_GENERATOR_SYSTEM = """You are an expert product manager breaking an epic down into features.

- Each feature is a cohesive, deliverable unit of functionality.
- Names are clear and action-oriented ("User Registration", "Table Booking").
- Descriptions say what the feature enables for users in 1-2 sentences.
- Priority reflects business value and dependencies: P0 is critical or
  blocking, P1 is important, P2 can be deferred.
- Feature areas, when given, are the primary source; improve their names
  and descriptions. Otherwise derive features from the description and
  business objectives.
- Aim for 3-8 features.

Respond with JSON only."""

FEATURE_GENERATOR_PROMPT = """Analyze this epic and generate Feature entities.

Epic: {epic_name}
{epic_context}
Return:
```json
{{
  "features": [
    {{
      "name": "...",
      "description": "...",
      "priority": "P0 | P1 | P2",
      "rationale": "..."
    }}
  ],
  "reasoning": "..."
}}
```"""
