"""Production service adapters against mocked HTTP, plus local retrieval and stores."""

import json

import httpx
import pytest

from gp_chat.errors import ServiceError
from gp_chat.models.message import ChatMessage, Role
from gp_chat.services.content import HttpInstructionProvider, HttpPredefinedMessageProvider
from gp_chat.services.embeddings import HttpEmbedder, cosine_similarity
from gp_chat.services.generation import OpenAIGenerationService, build_system_message, history_to_messages
from gp_chat.services.mock import MockEmbedder
from gp_chat.services.rag import IndexRAGService, RAGKind, RagIndex, chunk_text
from gp_chat.services.router import HttpRouterService
from gp_chat.services.session import HttpSessionProvider, JsonHistoryStore
from gp_chat.transport.http import HttpClient


def client_for(handler, base_url="https://svc.test/hook", token=None):
    return HttpClient(base_url, token=token, transport=httpx.MockTransport(handler))


def sse(*events):
    lines = [f"data: {json.dumps(e)}\n\n" for e in events]
    return ("".join(lines) + "data: [DONE]\n\n").encode()


def delta(text):
    return {"choices": [{"delta": {"content": text}}]}


class TestRouter:
    @pytest.mark.asyncio
    async def test_routes_to_agent(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"agent": "tutor", "knowledge": "k"})

        router = HttpRouterService(client_for(handler))
        result = await router.route("Hi", "user: Hi")
        assert result.agent == "tutor"
        assert result.knowledge == "k"
        assert result.examples == ""
        assert seen["url"] == "https://svc.test/hook"
        assert seen["body"] == {"message": "Hi", "conversationHistory": "user: Hi"}

    @pytest.mark.asyncio
    async def test_http_error(self):
        router = HttpRouterService(client_for(lambda request: httpx.Response(500, text="boom")))
        with pytest.raises(ServiceError) as exc:
            await router.route("Hi", "")
        assert exc.value.service == "router"

    @pytest.mark.asyncio
    async def test_missing_agent(self):
        router = HttpRouterService(client_for(lambda request: httpx.Response(200, json={"examples": "e"})))
        with pytest.raises(ServiceError):
            await router.route("Hi", "")


class TestGeneration:
    @pytest.mark.asyncio
    async def test_streams_cumulative_chunks(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, content=sse(delta("Hel"), delta("lo"), {"choices": [{"delta": {}}]}),
                                  headers={"Content-Type": "text/event-stream"})

        generation = OpenAIGenerationService(client_for(handler, token="sk-test"), model="gpt-test")
        chunks = []
        history = [ChatMessage(role=Role.USER, text="Hi")]
        result = await generation.generate("Be nice.", "ex", "kn", "likes cats", history, chunks.append)

        assert result.text == "Hello"
        assert chunks == ["Hel", "Hello"]
        assert seen["auth"] == "Bearer sk-test"
        body = seen["body"]
        assert body["model"] == "gpt-test"
        assert body["stream"] is True
        assert body["messages"][0]["role"] == "system"
        assert "User Profile Context: likes cats" in body["messages"][0]["content"]
        assert body["messages"][1] == {"role": "user", "content": "Hi"}

    @pytest.mark.asyncio
    async def test_empty_stream_is_an_error(self):
        def handler(request):
            return httpx.Response(200, content=sse(), headers={"Content-Type": "text/event-stream"})

        generation = OpenAIGenerationService(client_for(handler))
        with pytest.raises(ServiceError) as exc:
            await generation.generate("i", "", "", "", [])
        assert exc.value.service == "generation"

    @pytest.mark.asyncio
    async def test_http_error(self):
        generation = OpenAIGenerationService(client_for(lambda request: httpx.Response(429, text="slow down")))
        with pytest.raises(ServiceError):
            await generation.generate("i", "", "", "", [])

    @pytest.mark.asyncio
    async def test_update_profile(self):
        def handler(request):
            body = json.loads(request.content)
            assert "no profile" in body["messages"][1]["content"]
            return httpx.Response(200, json={"choices": [{"message": {"content": "Likes fractions."}}]})

        generation = OpenAIGenerationService(client_for(handler))
        profile = await generation.update_profile("", [ChatMessage(role=Role.USER, text="I love fractions")],
                                                  "Update the profile.")
        assert profile == "Likes fractions."

    @pytest.mark.asyncio
    async def test_update_profile_bad_response(self):
        generation = OpenAIGenerationService(client_for(lambda request: httpx.Response(200, json={"choices": []})))
        with pytest.raises(ServiceError) as exc:
            await generation.update_profile("", [], "x")
        assert exc.value.service == "profile"

    def test_prompt_helpers(self):
        assert build_system_message("I", "E", "K", "P") == "I\n\nKnowledge: K\n\nExamples: E\n\nUser Profile Context: P"
        messages = history_to_messages([ChatMessage(role=Role.BOT, text="hey")])
        assert messages == [{"role": "assistant", "content": "hey"}]


class TestSession:
    @pytest.mark.asyncio
    async def test_login_sets_token(self):
        def handler(request):
            if request.url.path == "/login":
                return httpx.Response(200, json={"status": "ok", "data": {"access_token": "tok"}})
            return httpx.Response(200, json={"auth": request.headers.get("Authorization")})

        http = client_for(handler, base_url="https://backend.test")
        result = await HttpSessionProvider(http, "/login", {"user": "u"}).login()
        assert result.success
        assert result.token == "tok"
        assert await http.get("/me") == {"auth": "Bearer tok"}

    @pytest.mark.asyncio
    async def test_login_failure(self):
        http = client_for(lambda request: httpx.Response(401, text="denied"), base_url="https://backend.test")
        result = await HttpSessionProvider(http).login()
        assert not result.success
        assert "401" in result.error

    @pytest.mark.asyncio
    async def test_login_without_token(self):
        http = client_for(lambda request: httpx.Response(200, json={}), base_url="https://backend.test")
        result = await HttpSessionProvider(http).login()
        assert not result.success


class TestRag:
    def test_chunk_text_packs_paragraphs(self):
        text = "alpha beta\n\ngamma delta\n\n" + "x" * 900
        chunks = chunk_text(text, max_chars=400, overlap=50)
        assert chunks[0] == "alpha beta\n\ngamma delta"
        assert all(len(c) <= 400 for c in chunks)
        assert len(chunks) == 4

    def test_cosine_similarity(self):
        assert cosine_similarity([1.0, 0.0], [2.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 1.0]) == 0.0

    @pytest.mark.asyncio
    async def test_search_ranks_by_embedding_similarity(self):
        embedder = MockEmbedder(["cats", "numerator", "denominator", "dogs"])
        index = await RagIndex.build(
            ["cats purr and sleep", "fractions have a numerator and a denominator", "dogs bark"], embedder,
        )
        query = (await embedder.embed(["what is a numerator"]))[0]
        hits = index.search(query)
        assert [h.text for h in hits] == ["fractions have a numerator and a denominator"]
        assert hits[0].score == pytest.approx(2 ** -0.5)
        assert index.search((await embedder.embed(["zebra"]))[0]) == []

    @pytest.mark.asyncio
    async def test_retrieve_uses_latest_user_message(self):
        embedder = MockEmbedder(["numerator", "decimals", "point", "fractions"])
        rag = IndexRAGService.from_corpora({
            "tutor": {
                "knowledge": "Fractions have a numerator. " * 10 + "\n\n" + "Decimals use a point. " * 12,
                "examples": "Q: what is a numerator? A: the top number.",
            },
        }, embedder)
        assert embedder.calls == []

        history = [
            ChatMessage(role=Role.USER, text="what about decimals"),
            ChatMessage(role=Role.BOT, text="Decimals use a point."),
            ChatMessage(role=Role.USER, text="tell me about numerator"),
        ]
        result = await rag.retrieve("tutor", "seed ex", "seed kn", history)
        assert "numerator" in result.knowledge
        assert "Decimals" not in result.knowledge
        assert result.examples.startswith("Q:")
        assert embedder.calls[-1] == ["tell me about numerator"]

        await rag.retrieve("tutor", "seed ex", "seed kn", history)
        corpus_calls = [c for c in embedder.calls if c != ["tell me about numerator"]]
        assert len(corpus_calls) == 2

    @pytest.mark.asyncio
    async def test_retrieve_falls_back_to_seeds(self):
        embedder = MockEmbedder(["numerator"])
        rag = IndexRAGService(embedder)
        rag.add("tutor", RAGKind.KNOWLEDGE, await RagIndex.build(["unrelated text"], embedder))
        result = await rag.retrieve("tutor", "seed ex", "seed kn", [ChatMessage(role=Role.USER, text="hello")])
        assert result.examples == "seed ex"
        assert result.knowledge == "seed kn"

    @pytest.mark.asyncio
    async def test_retrieve_empty(self):
        embedder = MockEmbedder(["anything"])
        result = await IndexRAGService(embedder).retrieve("nobody", "", "", [])
        assert result.empty
        assert embedder.calls == []

    def test_unknown_corpus_kind_rejected(self):
        with pytest.raises(ValueError):
            IndexRAGService.from_corpora({"tutor": {"recipes": "text"}}, MockEmbedder([]))


class TestHttpEmbedder:
    @pytest.mark.asyncio
    async def test_embeds_in_input_order(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [
                {"index": 1, "embedding": [0.0, 1.0]},
                {"index": 0, "embedding": [1.0, 0.0]},
            ]})

        http = client_for(handler, base_url="https://api.test/v1/embeddings", token="sk-test")
        vectors = await HttpEmbedder(http, model="embed-small").embed(["first", "second"])
        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert seen["url"] == "https://api.test/v1/embeddings"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"] == {"model": "embed-small", "input": ["first", "second"]}

    @pytest.mark.asyncio
    async def test_batches_large_inputs(self):
        sizes = []

        def handler(request):
            batch = json.loads(request.content)["input"]
            sizes.append(len(batch))
            return httpx.Response(200, json={"data": [
                {"index": i, "embedding": [float(i)]} for i in range(len(batch))
            ]})

        embedder = HttpEmbedder(client_for(handler), batch_size=2)
        vectors = await embedder.embed(["a", "b", "c"])
        assert sizes == [2, 1]
        assert len(vectors) == 3

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await HttpEmbedder(client_for(handler)).embed([]) == []

    @pytest.mark.asyncio
    async def test_http_error_is_a_service_error(self):
        http = client_for(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(ServiceError) as exc:
            await HttpEmbedder(http).embed(["a"])
        assert exc.value.service == "embeddings"

    @pytest.mark.asyncio
    async def test_count_mismatch_is_a_service_error(self):
        http = client_for(lambda request: httpx.Response(200, json={"data": []}))
        with pytest.raises(ServiceError):
            await HttpEmbedder(http).embed(["a"])


class TestContentProviders:
    @pytest.mark.asyncio
    async def test_fetch_predefined_message(self):
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"data": [{"attributes": {
                "identifier": "day_one",
                "content": "Welcome back!",
                "buttons": ["start_tour", {"identifier": "skip_tour", "text": "Just chat"}],
            }}]})

        http = client_for(handler, base_url="https://backend.test")
        message = await HttpPredefinedMessageProvider(http).fetch("day_one")
        assert seen["url"].path == "/chat-predefined-messages"
        assert seen["url"].params["identifier"] == "day_one"
        assert message.text == "Welcome back!"
        assert [(b.identifier, b.label) for b in message.buttons] == [
            ("start_tour", "start_tour"), ("skip_tour", "Just chat"),
        ]

    @pytest.mark.asyncio
    async def test_missing_predefined_message_is_none(self):
        http = client_for(lambda request: httpx.Response(200, json={"data": []}), base_url="https://backend.test")
        assert await HttpPredefinedMessageProvider(http).fetch("day_two") is None

    @pytest.mark.asyncio
    async def test_predefined_http_error(self):
        http = client_for(lambda request: httpx.Response(503, text="down"), base_url="https://backend.test")
        with pytest.raises(ServiceError) as exc:
            await HttpPredefinedMessageProvider(http).fetch("day_one")
        assert exc.value.service == "predefined"

    @pytest.mark.asyncio
    async def test_load_instructions(self):
        def handler(request):
            assert request.url.params["per_page"] == "100"
            return httpx.Response(200, json={"data": [
                {"attributes": {"identifier": "tutor", "instruction": "You teach maths."}},
                {"attributes": {"identifier": "profile_generator", "instruction": "Summarize the user."}},
                {"attributes": {"identifier": "blank"}},
            ]})

        http = client_for(handler, base_url="https://backend.test")
        instructions = await HttpInstructionProvider(http).load()
        assert instructions == {"tutor": "You teach maths.", "profile_generator": "Summarize the user."}


class TestJsonHistoryStore:
    @pytest.mark.asyncio
    async def test_append_load_clear(self, tmp_path):
        store = JsonHistoryStore(tmp_path / "nested" / "history.jsonl")
        assert await store.load() == []
        await store.append(ChatMessage(role=Role.USER, text="Hi"))
        await store.append(ChatMessage(role=Role.BOT, text="Hello", predefined_id="day_one"))

        reopened = JsonHistoryStore(tmp_path / "nested" / "history.jsonl")
        loaded = await reopened.load()
        assert [(m.role, m.text) for m in loaded] == [(Role.USER, "Hi"), (Role.BOT, "Hello")]
        assert loaded[1].predefined_id == "day_one"

        await store.clear()
        assert await reopened.load() == []

    @pytest.mark.asyncio
    async def test_append_adds_one_line(self, tmp_path):
        path = tmp_path / "history.jsonl"
        store = JsonHistoryStore(path)
        await store.append(ChatMessage(role=Role.USER, text="one"))
        first = path.read_text()
        await store.append(ChatMessage(role=Role.USER, text="two"))
        content = path.read_text()
        assert content.startswith(first)
        assert len(content.splitlines()) == 2
        assert json.loads(content.splitlines()[1])["message"] == "two"

    @pytest.mark.asyncio
    async def test_unreadable_lines_are_skipped(self, tmp_path):
        path = tmp_path / "history.jsonl"
        good = json.dumps(ChatMessage(role=Role.USER, text="kept").to_wire())
        path.write_text("{not json\n" + good + "\n[1, 2]\n")
        assert [m.text for m in await JsonHistoryStore(path).load()] == ["kept"]

    @pytest.mark.asyncio
    async def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "history.jsonl"
        path.write_text("{not json")
        assert await JsonHistoryStore(path).load() == []
