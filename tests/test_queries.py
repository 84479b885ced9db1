from coach_memory.infrastructure.neo4j.queries import LABEL, MemoryQueries


def test_every_owner_query_is_scoped_to_owner():
    statements = [
        MemoryQueries.get_by_id("o", "id"),
        MemoryQueries.list_active("o"),
        MemoryQueries.tiered_search("o", [[0.1]], 0.6, 5, 0.5, True, 1.0, None),
        MemoryQueries.find_similar("o", "EMO", [0.1], 0.85, 5),
        MemoryQueries.apply_merge("o", "id", 1, {}, ["b"]),
        MemoryQueries.update_embedding("o", "id", [0.1]),
        MemoryQueries.delete("o", ["id"]),
        MemoryQueries.supersede("o", "a", "b", 1.0),
        MemoryQueries.contradiction_candidates("o", 0.7, 0.95, 20),
        MemoryQueries.compression_candidates("o", 1.0, 0.3, 1.0, 0.5, 0.4, 100),
        MemoryQueries.mark_compressed("o", ["id"], 1.0),
        MemoryQueries.update_importance("o", "id", 0.5, 1.0),
        MemoryQueries.touch("o", ["id"], 1.0),
    ]
    for query, params in statements:
        assert LABEL in query
        assert "owner_id: $owner_id" in query
        assert params["owner_id"] == "o"


def test_tiered_search_limits_per_query():
    query, params = MemoryQueries.tiered_search("o", [[0.1], [0.2]], 0.6, 5, 0.5, False, 10.0, 20.0)

    assert "UNWIND range(0, size($query_embeddings) - 1) AS query_index" in query
    assert query.index("LIMIT $limit_per_query") < query.rindex("RETURN query_index")
    assert "compression_status: 'active'" in query
    assert params["accessed_after"] == 10.0
    assert params["accessed_before"] == 20.0


def test_apply_merge_updates_and_deletes_in_one_statement():
    query, params = MemoryQueries.apply_merge("o", "id", 3, {"content": "x"}, ["b", "c"])

    assert "m.version = $expected_version" in query
    assert "m.version = m.version + 1" in query
    assert query.index("SET m += $changes") < query.index("DETACH DELETE a")
    assert "a.id <> m.id" in query
    assert "size(absorbed) AS deleted" in query
    assert params["expected_version"] == 3
    assert params["changes"] == {"content": "x"}
    assert params["absorbed_ids"] == ["b", "c"]


def test_touch_leaves_version_alone():
    query, _ = MemoryQueries.touch("o", ["id"], 1.0)

    assert "version" not in query
    assert "updated_at" not in query


def test_contradiction_pairs_use_half_open_band():
    query, params = MemoryQueries.contradiction_candidates("o", 0.7, 0.95, 20)

    assert "similarity >= $min_similarity AND similarity < $max_similarity" in query
    assert "a.id < b.id" in query
    assert params["limit"] == 20


def test_schema_statements_are_idempotent():
    assert all("IF NOT EXISTS" in statement for statement in MemoryQueries.create_constraints())
