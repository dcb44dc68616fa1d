"""Structured extraction of concepts and relationships from exploration text."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from deepgraph.analysis.concept_store import Concept, Relationship
from deepgraph.llm.client import LLMClient, OracleError
from deepgraph.utils.json_utils import extract_json_object, find_balanced_object


class ParseError(ValueError):
    """Oracle output held no balanced object, or the object failed validation."""

    def __init__(self, message: str, raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class ConceptSpec(BaseModel):
    """Concept as returned by the parsing call"""
    model_config = {"extra": "ignore", "str_strip_whitespace": True}
    id: str = Field(min_length=1, description="Unique identifier: short name with no spaces")
    name: str = Field(min_length=1, description="Concept name")
    description: str | None = Field(default="", description="Brief description of the concept")


class RelationshipSpec(BaseModel):
    """Relationship as returned by the parsing call"""
    model_config = {"extra": "ignore", "str_strip_whitespace": True}
    source: str = Field(
        min_length=1,
        description="Source concept identifier",
        validation_alias=AliasChoices("source", "src", "from", "source_id"),
    )
    target: str = Field(
        min_length=1,
        description="Target concept identifier",
        validation_alias=AliasChoices("target", "dst", "to", "target_id"),
    )
    type: str = Field(min_length=1, description="Relationship type (e.g. contains, influences, enables)")
    description: str | None = Field(default="", description="Brief description of the relationship")


class ExtractionPayload(BaseModel):
    """Top-level object expected from the parsing call"""
    model_config = {"extra": "ignore", "str_strip_whitespace": True}
    concepts: list[ConceptSpec] = Field(default_factory=list)
    relationships: list[RelationshipSpec] = Field(default_factory=list)


@dataclass
class Extraction:
    """Candidates produced by one extraction; failure is None, 'oracle' or 'parse'."""
    concepts: list[Concept] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    failure: str | None = None
    error: str | None = None
    raw: str | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


PARSING_DIRECTIVE = """Parse the following text into a structured format of concepts and relationships.
For each concept, extract:
1. A unique identifier (short name with no spaces)
2. The concept name
3. A brief description

For each relationship, extract:
1. The source concept identifier
2. The target concept identifier
3. The type of relationship (e.g., "contains", "influences", "enables")
4. A brief description of the relationship

Relationships may only reference identifiers of concepts you list.

Format your response as JSON with the following structure:
{
  "concepts": [
    {"id": "concept_id", "name": "Concept Name", "description": "Description of the concept"}
  ],
  "relationships": [
    {"source": "source_concept_id", "target": "target_concept_id", "type": "relationship_type", "description": "Description of the relationship"}
  ]
}

JSON schema of the response:
{schema}

Here's the text to parse:

{text}"""

PARSING_SYSTEM_PROMPT = (
    "You convert free text into knowledge graph JSON. "
    "Return ONLY the JSON object, with no commentary."
)


def decode_payload(raw: str) -> ExtractionPayload:
    """Decode the first balanced object in ``raw`` into a validated payload.

    Raises:
        ParseError: no balanced region, invalid JSON, or schema violation
    """
    region = find_balanced_object(raw)
    if region is None:
        raise ParseError("No balanced JSON object found in response", raw=raw)
    try:
        data = json.loads(region)
    except json.JSONDecodeError:
        # LLMs commonly leave trailing commas; retry once after cleaning
        data = extract_json_object(region)
        if data is None:
            raise ParseError("Balanced region is not valid JSON", raw=raw) from None
    try:
        return ExtractionPayload.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Response failed schema validation: {e.error_count()} error(s)", raw=raw) from e


class Extractor:
    """Second-stage oracle call that turns exploration text into candidates."""

    def __init__(self, llm: LLMClient, system_prompt: str = PARSING_SYSTEM_PROMPT):
        self.llm = llm
        self.system_prompt = system_prompt
        self._schema = json.dumps(ExtractionPayload.model_json_schema(), indent=2)

    def build_prompt(self, text: str) -> str:
        return PARSING_DIRECTIVE.replace("{schema}", self._schema).replace("{text}", text)

    def extract(self, exploration) -> Extraction:
        """
        Extract candidates from an Exploration.

        Never raises for oracle failures or malformed output; the failure kind
        and message are recorded on the returned Extraction instead.
        """
        text = getattr(exploration, "text", exploration) or ""
        if not text.strip():
            # Nothing to parse; a failed cycle, not a zero-growth one
            return Extraction(failure="parse", error="empty exploration text")

        try:
            raw = self.llm.raw(system=self.system_prompt, user=self.build_prompt(text), stage="extract")
        except OracleError as e:
            return Extraction(failure="oracle", error=str(e))

        try:
            payload = decode_payload(raw)
        except ParseError as e:
            return Extraction(failure="parse", error=str(e), raw=raw)

        return Extraction(
            concepts=[Concept(id=c.id, name=c.name, description=c.description or "")
                      for c in payload.concepts],
            relationships=[Relationship(source=r.source, target=r.target,
                                        type=r.type, description=r.description or "")
                           for r in payload.relationships],
            raw=raw,
        )
