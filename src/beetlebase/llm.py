"""LLM utility functions for breeder reports and species suggestions.

Text generation is best effort. Callers always get a string (or a list)
back: failures are logged and replaced with a generic message so record
operations never depend on the model being reachable.
"""

import json
from typing import List, Optional

from openai import OpenAI
from loguru import logger

from .config import get_config
from .errors import ExternalServiceFailure
from .records import latest_measurement
from .schemas import Individual
from .utils import calculate_cost


REPORT_UNAVAILABLE_MESSAGE = "AI reports are currently unavailable: no API key is configured."
REPORT_ERROR_MESSAGE = "An error occurred while generating the AI report. Please try again later."

MIN_SUGGESTION_QUERY_LENGTH = 3


def get_openai_client() -> OpenAI:
    """Get configured OpenAI client."""
    config = get_config()
    return OpenAI(api_key=config.openai_api_key)


def call_llm(
    prompt: str,
    model: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: int = 1200,
    response_format: Optional[dict] = None
) -> tuple[str, float]:
    """
    Call OpenAI LLM and return response with cost.

    Args:
        prompt: The prompt to send
        model: Model name (defaults to bb_llm_model from config)
        temperature: Temperature for generation
        max_tokens: Maximum tokens to generate
        response_format: Optional response format (e.g., {"type": "json_object"})

    Returns:
        (response_text, cost_usd)

    Raises:
        ExternalServiceFailure: if the API call fails or returns no text
    """
    config = get_config()

    if model is None:
        model = config.bb_llm_model

    call_kwargs = {
        "model": model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": temperature,
        "max_tokens": max_tokens
    }

    if response_format:
        call_kwargs["response_format"] = response_format

    logger.debug(f"Calling LLM: {model}")

    try:
        response = get_openai_client().chat.completions.create(**call_kwargs)
    except Exception as e:
        raise ExternalServiceFailure(f"LLM call failed: {type(e).__name__}: {e}") from e

    response_text = response.choices[0].message.content
    if not response_text:
        raise ExternalServiceFailure("LLM returned an empty response")

    cost = 0.0
    if response.usage is not None:
        cost = calculate_cost(response.usage.prompt_tokens, response.usage.completion_tokens, model)
        logger.debug(
            f"LLM call complete: {response.usage.prompt_tokens} + "
            f"{response.usage.completion_tokens} tokens, ${cost:.6f}"
        )

    return response_text, cost


def build_report_prompt(individual: Individual) -> str:
    """Prompt built only from an individual's public-safe attributes."""
    latest = latest_measurement(individual)
    if latest:
        measurement_text = (
            f"weight {latest.weight_g if latest.weight_g is not None else 'N/A'}g, "
            f"length {latest.length_mm if latest.length_mm is not None else 'N/A'}mm, "
            f"jaw width {latest.jaw_width_mm if latest.jaw_width_mm is not None else 'N/A'}mm"
        )
    else:
        measurement_text = "none"

    stage = individual.stage.value if hasattr(individual.stage, "value") else individual.stage
    sex = individual.sex.value if hasattr(individual.sex, "value") else individual.sex

    prompt_parts = [
        "You are a world-class stag beetle and rhinoceros beetle breeder.",
        "Write an engaging, expert report about the specimen below that combines",
        "its characteristics, its potential and practical husbandry advice.",
        "",
        "# Specimen",
        f"- Common name: {individual.species_common}",
        f"- Scientific name: {individual.species_scientific}",
        f"- Stage: {stage}",
        f"- Sex: {sex}",
        f"- Line: {individual.line_name or 'none'}",
        f"- Sire code: {individual.parent_code_m or 'unknown'}",
        f"- Dam code: {individual.parent_code_f or 'unknown'}",
        f"- Latest measurement: {measurement_text}",
        f"- Breeder notes: {individual.notes or 'none'}",
        "",
        "# Structure",
        "1. **Introduction**: what makes this species attractive.",
        "2. **Assessment**: the specimen's potential based on lineage and latest size.",
        "3. **Husbandry advice**: concrete next steps for its current stage.",
        "4. **Closing**: a positive, motivating conclusion.",
        "",
        "Use technical terms where appropriate but keep the text readable and passionate.",
    ]
    return "\n".join(prompt_parts)


def generate_individual_report(individual: Individual, model: Optional[str] = None) -> str:
    """
    Generate a narrative report for an individual.

    Returns:
        The report text, or a generic message if text generation is
        unavailable or fails
    """
    config = get_config()
    if not config.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; AI reports are disabled")
        return REPORT_UNAVAILABLE_MESSAGE

    logger.info(f"Generating report for {individual.individual_code}...")

    try:
        text, _ = call_llm(
            prompt=build_report_prompt(individual),
            model=model,
            temperature=0.7,
            max_tokens=config.bb_report_max_tokens,
        )
    except ExternalServiceFailure as e:
        logger.error(f"Error generating report for {individual.individual_code}: {e}")
        return REPORT_ERROR_MESSAGE

    return text


def parse_name_list(response_text: str) -> List[str]:
    """Extract a list of names from a JSON response ({"names": [...]} or [...])."""
    text = response_text.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning(f"Could not parse suggestion response: {response_text[:100]}")
        return []

    if isinstance(data, dict):
        data = data.get("names", [])
    if not isinstance(data, list):
        return []
    return [str(name).strip() for name in data if str(name).strip()]


def suggest_scientific_names(query: str, known_names: Optional[List[str]] = None, model: Optional[str] = None) -> List[str]:
    """
    Suggest scientific names for a partially typed name.

    LLM candidates come first, followed by matching names already used in
    the collection. On LLM failure only the local matches are returned.

    Args:
        query: Partial scientific name (at least 3 characters)
        known_names: Scientific names already present in the record store
    """
    query = (query or "").strip()
    if len(query) < MIN_SUGGESTION_QUERY_LENGTH:
        return []

    local = [name for name in known_names or [] if query.lower() in name.lower()]

    config = get_config()
    if not config.openai_api_key:
        return local

    prompt = (
        "List up to 5 scientific names of stag beetles or rhinoceros beetles "
        f"(Lucanidae, Dynastinae) that match or start with '{query}'. "
        'Answer with JSON only: {"names": ["..."]}'
    )

    try:
        text, _ = call_llm(
            prompt=prompt,
            model=model,
            temperature=0.2,
            max_tokens=config.bb_suggest_max_tokens,
            response_format={"type": "json_object"},
        )
        remote = parse_name_list(text)
    except ExternalServiceFailure as e:
        logger.warning(f"Scientific name suggestions failed, using local matches: {e}")
        remote = []

    combined = []
    for name in remote + local:
        if name not in combined:
            combined.append(name)
    return combined
