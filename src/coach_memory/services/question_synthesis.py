"""Retrieval query synthesis."""

from coach_memory.core import constants
from coach_memory.core.errors import ApplicationError
from coach_memory.core.logging import get_logger
from coach_memory.infrastructure.llm.json_payload import parse_json_array
from coach_memory.services import ChatModel

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are a search query generator. Output only valid JSON arrays."

QUERY_PROMPT = """Generate 3-5 short search queries to find memories about this user that would
help a coach respond to the current situation. Cover different angles:
1. Past experience with this kind of situation or task
2. Preferences about how the assistant should interact
3. Emotional patterns or triggers
4. Motivation techniques that worked before
5. Relevant life context

Current situation:
{context}
{seeds}
Return ONLY a JSON array of strings, for example:
["query one", "query two", "query three"]"""

SEEDS_SECTION = """
Questions already suggested (expand on these, do not repeat them):
{questions}
"""


def dedupe_queries(queries: list[str], limit: int = constants.MAX_SYNTHESIZED_QUERIES) -> list[str]:
    """Strip, drop blanks and case-insensitive repeats, keep order, cap."""
    seen: set[str] = set()
    unique: list[str] = []
    for query in queries:
        cleaned = query.strip()
        key = cleaned.lower()
        if not cleaned or key in seen:
            continue
        seen.add(key)
        unique.append(cleaned)
    return unique[:limit]


class QuestionSynthesizer:
    """Produces 1-5 search queries for a conversational context.

    Enough seed questions skip the model entirely. Otherwise one completion
    is requested and anything going wrong falls back to the seeds, or to the
    context itself as the only query. Never raises, never returns an empty
    list for a non-empty context.
    """

    def __init__(
        self,
        chat_model: ChatModel | None,
        max_queries: int = constants.MAX_SYNTHESIZED_QUERIES,
        min_seed_questions: int = constants.MIN_SEED_QUESTIONS,
        temperature: float = 0.3,
    ):
        self.chat_model = chat_model
        self.max_queries = max_queries
        self.min_seed_questions = min_seed_questions
        self.temperature = temperature

    def _fallback(self, context: str, seeds: list[str]) -> list[str]:
        return dedupe_queries(seeds, self.max_queries) or [context]

    async def synthesize(self, context: str, seed_questions: list[str] | None = None) -> list[str]:
        seeds = dedupe_queries(seed_questions or [], self.max_queries)

        if len(seeds) >= self.min_seed_questions:
            return seeds

        if self.chat_model is None:
            return self._fallback(context, seeds)

        seeds_section = SEEDS_SECTION.format(questions="\n".join(f"- {q}" for q in seeds)) if seeds else ""
        prompt = QUERY_PROMPT.format(context=context, seeds=seeds_section)

        try:
            text = await self.chat_model.complete(SYSTEM_PROMPT, prompt, temperature=self.temperature, max_tokens=300)
            generated = [q for q in parse_json_array(text) if isinstance(q, str)]
        except ApplicationError as e:
            logger.warning("Query synthesis failed, using fallback", error=str(e), error_code=e.code.value)
            return self._fallback(context, seeds)
        except Exception as e:
            logger.error("Unexpected query synthesis failure", error=str(e), exc_info=True)
            return self._fallback(context, seeds)

        if not dedupe_queries(generated):
            logger.warning("Query synthesis returned no usable queries, using fallback")
            return self._fallback(context, seeds)
        return dedupe_queries(seeds + generated, self.max_queries)
