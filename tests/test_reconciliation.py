from datetime import datetime

import pytest

from conftest import FakeAdapter

from migverify.errors import QueryError, QueryTimeoutError, SourceConnectionError
from migverify.snapshot.codec import decode
from migverify.snapshot.model import CountRecord, EntityKey, Snapshot
from recon.results import OutcomeStatus
from recon.runner import reconcile


def _baseline(*records, version="5.0.21"):
    return Snapshot(
        source_version=version,
        captured_at=datetime(2024, 10, 14, 9, 0, 0),
        records=tuple(CountRecord(ns, entity, count) for ns, entity, count in records),
    )


def _status_counts(result):
    counts = {status: 0 for status in OutcomeStatus}
    for outcome in result.outcomes.values():
        counts[outcome.status] += 1
    return counts


def _assert_conservation(result):
    counts = _status_counts(result)
    assert result.summary.entities_total == sum(counts.values())
    assert result.summary.entities_matched == counts[OutcomeStatus.MATCHED]
    assert (result.verdict == "SUCCESS") == (result.summary.entities_matched == result.summary.entities_total)


def test_exact_match_succeeds():
    adapter = FakeAdapter({"a": {"x": 5}})

    result = reconcile(_baseline(("a", "x", 5)), adapter, set())

    outcome = result.outcomes[EntityKey("a", "x")]
    assert outcome.status is OutcomeStatus.MATCHED
    assert outcome.delta is None
    assert result.verdict == "SUCCESS"
    assert result.exit_code == 0
    assert result.summary.namespaces_matched == result.summary.namespaces_total == 1
    assert result.baseline_version == "5.0.21"
    assert result.current_version == "7.0.2"


def test_single_mismatch_among_55_entities_fails():
    records = [("boards-user", "x-clientmigrations", 0)]
    live = {"boards-user": {"x-clientmigrations": 1}}
    for idx in range(54):
        namespace = f"db{idx % 6}"
        records.append((namespace, f"coll{idx}", idx * 10))
        live.setdefault(namespace, {})[f"coll{idx}"] = idx * 10
    adapter = FakeAdapter(live)

    result = reconcile(_baseline(*records), adapter, set())

    outcome = result.outcomes[EntityKey("boards-user", "x-clientmigrations")]
    assert outcome.status is OutcomeStatus.MISMATCHED
    assert outcome.delta == 1
    assert (result.summary.entities_matched, result.summary.entities_total) == (54, 55)
    assert (result.summary.namespaces_matched, result.summary.namespaces_total) == (6, 7)
    assert result.verdict == "FAILURE"
    assert result.exit_code == 1
    _assert_conservation(result)


def test_missing_namespace_short_circuits_queries(captured_log):
    adapter = FakeAdapter({"app": {"users": 2}})
    baseline = _baseline(
        ("old_db", "a", 1),
        ("old_db", "b", 2),
        ("old_db", "c", 3),
        ("app", "users", 2),
    )

    result = reconcile(baseline, adapter, set(), logger=captured_log.logger)

    old = [o for o in result.outcomes.values() if o.namespace == "old_db"]
    assert len(old) == 3
    assert all(o.status is OutcomeStatus.MISSING_NAMESPACE for o in old)
    assert all(ns != "old_db" for ns, _ in adapter.count_calls)
    assert result.missing_namespaces() == ["old_db"]
    assert (result.summary.namespaces_matched, result.summary.namespaces_total) == (1, 2)
    assert (result.summary.entities_matched, result.summary.entities_total) == (1, 4)
    assert "verify_namespace_missing" in captured_log.messages("WARN")
    _assert_conservation(result)


def test_excluded_namespace_never_reaches_results():
    adapter = FakeAdapter({"admin": {"users": 99}, "app": {"users": 1}})
    baseline = _baseline(("admin", "users", 10), ("app", "users", 1))

    result = reconcile(baseline, adapter, {"admin"})

    assert all(key.namespace != "admin" for key in result.outcomes)
    assert all(ns != "admin" for ns, _ in adapter.count_calls)
    assert result.summary.entities_total == 1
    assert result.summary.namespaces_total == 1
    assert result.verdict == "SUCCESS"


def test_malformed_baseline_line_does_not_produce_an_outcome():
    baseline = decode("# MongoDB Count File - Version: 5.0 - Date: 2024-10-14T09:00:00\ngarbage-no-pipe\napp.users|1\n")

    result = reconcile(baseline, FakeAdapter({"app": {"users": 1}}), set())

    assert list(result.outcomes) == [EntityKey("app", "users")]


def test_query_failures_become_missing_entities(captured_log):
    adapter = FakeAdapter(
        {
            "app": {
                "users": 4,
                "broken": QueryError("driver exploded"),
                "slow": QueryTimeoutError("timed out"),
            }
        }
    )
    baseline = _baseline(("app", "users", 4), ("app", "broken", 1), ("app", "slow", 2), ("app", "gone", 3))

    result = reconcile(baseline, adapter, set(), logger=captured_log.logger, query_timeout=2.5)

    statuses = {key.entity: outcome.status for key, outcome in result.outcomes.items()}
    assert statuses == {
        "users": OutcomeStatus.MATCHED,
        "broken": OutcomeStatus.MISSING_ENTITY,
        "slow": OutcomeStatus.MISSING_ENTITY,
        "gone": OutcomeStatus.MISSING_ENTITY,
    }
    assert set(adapter.timeouts) == {2.5}
    warnings = captured_log.messages("WARN")
    assert "count_query_timeout" in warnings
    assert "count_query_failed" in warnings
    assert "verify_entity_missing" in warnings
    assert result.summary.namespaces_matched == 0
    _assert_conservation(result)


def test_delta_is_live_minus_baseline():
    adapter = FakeAdapter({"app": {"grew": 15, "shrank": 7}})

    result = reconcile(_baseline(("app", "grew", 10), ("app", "shrank", 10)), adapter, set())

    assert result.outcomes[EntityKey("app", "grew")].delta == 5
    assert result.outcomes[EntityKey("app", "shrank")].delta == -3


def test_duplicate_identifiers_collapse_to_last_occurrence(captured_log):
    adapter = FakeAdapter({"app": {"users": 7}})
    baseline = _baseline(("app", "users", 3), ("app", "users", 7))

    result = reconcile(baseline, adapter, set(), logger=captured_log.logger)

    assert len(result.outcomes) == 1
    assert result.outcomes[EntityKey("app", "users")].status is OutcomeStatus.MATCHED
    assert adapter.count_calls == [("app", "users")]
    assert "baseline_duplicate_entity" in captured_log.messages("WARN")


def test_parallel_run_matches_sequential_run():
    live = {f"db{n}": {f"c{i}": i for i in range(12)} for n in range(4)}
    live["db2"]["c5"] = 500
    live["db3"]["c1"] = QueryError("nope")
    records = [(ns, entity, i) for ns, entities in live.items() for i, entity in enumerate(entities)]
    records.append(("vanished", "c0", 1))
    baseline = _baseline(*records)

    sequential = reconcile(baseline, FakeAdapter(live), set(), max_parallel=1)
    parallel = reconcile(baseline, FakeAdapter(live), set(), max_parallel=8)

    assert parallel.summary == sequential.summary
    assert dict(parallel.outcomes) == dict(sequential.outcomes)
    assert parallel.verdict == "FAILURE"


def test_parallelism_capped_for_serial_adapters(captured_log):
    adapter = FakeAdapter({"app": {"a": 1, "b": 2}}, supports_parallel=False)

    result = reconcile(
        _baseline(("app", "a", 1), ("app", "b", 2)), adapter, set(), logger=captured_log.logger, max_parallel=4
    )

    assert result.verdict == "SUCCESS"
    assert "recon_parallelism_limited" in captured_log.messages("WARN")


def test_unreachable_source_is_fatal():
    adapter = FakeAdapter({"app": {"users": 1}}, fail_listing=True)

    with pytest.raises(SourceConnectionError):
        reconcile(_baseline(("app", "users", 1)), adapter, set())


def test_result_outcomes_are_read_only():
    result = reconcile(_baseline(("a", "x", 5)), FakeAdapter({"a": {"x": 5}}), set())

    with pytest.raises(TypeError):
        result.outcomes[EntityKey("a", "y")] = None
