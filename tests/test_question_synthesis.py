from fakes import FakeChatModel

from coach_memory.services.question_synthesis import SYSTEM_PROMPT, QuestionSynthesizer, dedupe_queries

CONTEXT = "User is avoiding their tax paperwork again"


def test_dedupe_is_case_insensitive_and_ordered():
    assert dedupe_queries(["A", " a ", "", "b", "B", "c"], limit=5) == ["A", "b", "c"]
    assert dedupe_queries([f"q{i}" for i in range(8)]) == ["q0", "q1", "q2", "q3", "q4"]


async def test_enough_seeds_skip_the_model():
    chat = FakeChatModel({SYSTEM_PROMPT: '["never used"]'})
    synthesizer = QuestionSynthesizer(chat)

    queries = await synthesizer.synthesize(CONTEXT, ["one", "two", "three"])

    assert queries == ["one", "two", "three"]
    assert chat.calls == []


async def test_generated_queries_follow_seeds():
    chat = FakeChatModel({SYSTEM_PROMPT: '```json\n["paperwork avoidance", "tax anxiety", "one"]\n```'})
    synthesizer = QuestionSynthesizer(chat)

    queries = await synthesizer.synthesize(CONTEXT, ["one"])

    assert queries == ["one", "paperwork avoidance", "tax anxiety"]
    assert "one" in chat.calls[0][1]


async def test_model_failure_falls_back_to_seeds():
    synthesizer = QuestionSynthesizer(FakeChatModel())
    assert await synthesizer.synthesize(CONTEXT, ["seed question"]) == ["seed question"]


async def test_no_model_and_no_seeds_uses_context():
    synthesizer = QuestionSynthesizer(None)
    assert await synthesizer.synthesize(CONTEXT) == [CONTEXT]


async def test_empty_generation_falls_back_to_context():
    synthesizer = QuestionSynthesizer(FakeChatModel({SYSTEM_PROMPT: '["", "   "]'}))
    assert await synthesizer.synthesize(CONTEXT) == [CONTEXT]


async def test_garbage_output_falls_back():
    synthesizer = QuestionSynthesizer(FakeChatModel({SYSTEM_PROMPT: "I cannot help with that"}))
    assert await synthesizer.synthesize(CONTEXT, []) == [CONTEXT]
