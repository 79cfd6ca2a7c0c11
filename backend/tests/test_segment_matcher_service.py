"""
Tests du matching activite -> segments : efforts, PR, KOM et classements.
"""
from datetime import datetime
from uuid import uuid4

import pytest
from sqlmodel import Session, select

from app.domain.entities import Activity, Gender, Segment, SegmentEffort
from app.domain.services.geo_query_service import geo_query_service
from app.domain.services.segment_matcher_service import (
    SEGMENT_LOCK_STRIPES,
    SegmentMatcherService,
    segment_lock_for,
    segment_matcher_service,
)
from conftest import make_activity, make_segment, make_user, straight_route


ROUTE = straight_route()


def _efforts(session, segment):
    return {e.user_id: e for e in session.exec(select(SegmentEffort).where(SegmentEffort.segment_id == segment.id)).all()}


@pytest.fixture
def creator(session):
    return make_user(session, "createur")


@pytest.fixture
def full_segment(session, creator):
    return make_segment(session, creator, ROUTE, distance_meters=2500)


class TestEstimation:
    def test_prorata(self, session, creator):
        segment = make_segment(session, creator, ROUTE, distance_meters=1000)
        activity = make_activity(session, creator, ROUTE, distance_meters=5000, duration_seconds=1500)
        assert segment_matcher_service.estimate_segment_duration(activity, segment, 50.0) == 150

    def test_minimum_one_second(self, session, creator):
        segment = make_segment(session, creator, ROUTE, distance_meters=1)
        activity = make_activity(session, creator, ROUTE, distance_meters=50000, duration_seconds=60)
        assert segment_matcher_service.estimate_segment_duration(activity, segment, 100.0) == 1

    def test_zero_distance_or_duration(self, session, creator):
        segment = make_segment(session, creator, ROUTE)
        no_distance = make_activity(session, creator, ROUTE, distance_meters=0)
        no_duration = make_activity(session, creator, ROUTE, duration_seconds=0)
        assert segment_matcher_service.estimate_segment_duration(no_distance, segment, 100.0) is None
        assert segment_matcher_service.estimate_segment_duration(no_duration, segment, 100.0) is None


class TestProcessActivity:
    def test_two_users_kom_and_ranks(self, session, full_segment):
        first = make_user(session, "user1")
        second = make_user(session, "user2")
        slow = make_activity(session, first, ROUTE, duration_seconds=600, completed_at=datetime(2026, 5, 1, 8))
        fast = make_activity(session, second, ROUTE, duration_seconds=500, completed_at=datetime(2026, 5, 1, 9))

        segment_matcher_service.process_activity(session, slow)
        segment_matcher_service.process_activity(session, fast)

        efforts = _efforts(session, full_segment)
        assert (efforts[second.id].is_kom, efforts[second.id].is_pr) == (True, True)
        assert (efforts[first.id].is_kom, efforts[first.id].is_pr) == (False, True)
        assert efforts[second.id].rank_overall == 1
        assert efforts[first.id].rank_overall == 2
        assert efforts[second.id].duration_seconds == 500

    def test_kom_is_unique(self, session, full_segment):
        for index, duration in enumerate((640, 520, 580)):
            user = make_user(session, f"athlete{index}")
            activity = make_activity(session, user, ROUTE, duration_seconds=duration)
            segment_matcher_service.process_activity(session, activity)

        efforts = list(_efforts(session, full_segment).values())
        assert sum(e.is_kom for e in efforts) == 1
        assert sorted(e.rank_overall for e in efforts) == [1, 2, 3]
        assert min(efforts, key=lambda e: e.duration_seconds).is_kom

    def test_activity_without_route(self, session, creator, full_segment):
        activity = make_activity(session, creator, None)
        assert segment_matcher_service.process_activity(session, activity) == []
        assert session.exec(select(SegmentEffort)).all() == []

    def test_activity_not_completed(self, session, creator, full_segment):
        activity = make_activity(session, creator, ROUTE, completed_at=None)
        assert segment_matcher_service.process_activity(session, activity) == []

    def test_zero_distance_creates_nothing(self, session, creator, full_segment):
        activity = make_activity(session, creator, ROUTE, distance_meters=0)
        assert segment_matcher_service.process_activity(session, activity) == []
        assert session.exec(select(SegmentEffort)).all() == []

    def test_effort_fields(self, session, creator, full_segment):
        activity = make_activity(session, creator, ROUTE, duration_seconds=600, avg_heart_rate=152)
        [effort] = segment_matcher_service.process_activity(session, activity)
        assert effort.activity_id == activity.id
        assert effort.user_id == creator.id
        assert effort.achieved_at == activity.completed_at
        assert effort.avg_heart_rate == 152
        assert effort.avg_speed_kmh == pytest.approx(15.0)


class TestOverlapThreshold:
    def test_boundary_is_inclusive(self, session, creator):
        segment = make_segment(session, creator, straight_route(start_lng=5.024, steps=2), distance_meters=1250)
        activity = make_activity(session, creator, ROUTE)
        overlap = geo_query_service.overlap_percentage(geo_query_service.route_of(activity), segment)

        created = segment_matcher_service.process_activity(session, activity, min_overlap_percentage=overlap)
        assert [e.segment_id for e in created] == [segment.id]

    def test_below_threshold_is_ignored(self, session, creator):
        segment = make_segment(session, creator, straight_route(start_lng=5.024, steps=2), distance_meters=1250)
        activity = make_activity(session, creator, ROUTE)
        overlap = geo_query_service.overlap_percentage(geo_query_service.route_of(activity), segment)

        assert segment_matcher_service.process_activity(session, activity, overlap + 0.01) == []

    def test_default_threshold_from_settings(self, session, creator):
        make_segment(session, creator, straight_route(start_lng=5.024, steps=2), distance_meters=1250)
        activity = make_activity(session, creator, ROUTE)
        # 50 % de recouvrement < seuil par defaut de 90 %
        assert segment_matcher_service.process_activity(session, activity) == []

    def test_invalid_segment_skipped_others_matched(self, session, creator, full_segment):
        make_segment(session, creator, [[5.008, 45.0]], name="Casse")
        activity = make_activity(session, creator, ROUTE)

        created = segment_matcher_service.process_activity(session, activity)
        assert [e.segment_id for e in created] == [full_segment.id]


class TestPersonalRecords:
    def test_slower_repeat_keeps_first_pr(self, session, creator, full_segment):
        fast = make_activity(session, creator, ROUTE, duration_seconds=500, completed_at=datetime(2026, 5, 1, 8))
        slow = make_activity(session, creator, ROUTE, duration_seconds=560, completed_at=datetime(2026, 5, 2, 8))
        [first] = segment_matcher_service.process_activity(session, fast)
        [second] = segment_matcher_service.process_activity(session, slow)

        session.refresh(first)
        assert first.is_pr is True
        assert second.is_pr is False
        assert second.rank_overall is None

    def test_faster_repeat_takes_pr(self, session, creator, full_segment):
        slow = make_activity(session, creator, ROUTE, duration_seconds=560, completed_at=datetime(2026, 5, 1, 8))
        fast = make_activity(session, creator, ROUTE, duration_seconds=500, completed_at=datetime(2026, 5, 2, 8))
        [first] = segment_matcher_service.process_activity(session, slow)
        [second] = segment_matcher_service.process_activity(session, fast)

        session.refresh(first)
        assert (first.is_pr, second.is_pr) == (False, True)
        assert (first.rank_overall, second.rank_overall) == (None, 1)

    def test_equal_time_does_not_take_pr(self, session, creator, full_segment):
        a = make_activity(session, creator, ROUTE, duration_seconds=500, completed_at=datetime(2026, 5, 1, 8))
        b = make_activity(session, creator, ROUTE, duration_seconds=500, completed_at=datetime(2026, 5, 2, 8))
        [first] = segment_matcher_service.process_activity(session, a)
        [second] = segment_matcher_service.process_activity(session, b)

        session.refresh(first)
        assert (first.is_pr, second.is_pr) == (True, False)

    def test_single_pr_per_user(self, session, creator, full_segment):
        for day, duration in enumerate((600, 540, 570, 520), start=1):
            activity = make_activity(session, creator, ROUTE, duration_seconds=duration,
                                     completed_at=datetime(2026, 5, day, 8))
            segment_matcher_service.process_activity(session, activity)

        efforts = session.exec(select(SegmentEffort)).all()
        prs = [e for e in efforts if e.is_pr]
        assert len(prs) == 1
        assert prs[0].duration_seconds == 520


class TestTieBreakAndIdempotency:
    def test_tie_goes_to_earliest_achievement(self, session, full_segment):
        early = make_user(session, "early")
        late = make_user(session, "late")
        late_activity = make_activity(session, late, ROUTE, completed_at=datetime(2026, 5, 3, 8))
        early_activity = make_activity(session, early, ROUTE, completed_at=datetime(2026, 5, 1, 8))

        # Traitement dans l'ordre inverse des dates
        segment_matcher_service.process_activity(session, late_activity)
        segment_matcher_service.process_activity(session, early_activity)

        efforts = _efforts(session, full_segment)
        assert efforts[early.id].is_kom is True
        assert efforts[early.id].rank_overall == 1
        assert efforts[late.id].is_kom is False
        assert efforts[late.id].rank_overall == 2

    def test_reprocessing_does_not_duplicate(self, session, creator, full_segment):
        activity = make_activity(session, creator, ROUTE)
        [first] = segment_matcher_service.process_activity(session, activity)
        [again] = segment_matcher_service.process_activity(session, activity)

        assert again.id == first.id
        assert len(session.exec(select(SegmentEffort)).all()) == 1
        session.refresh(full_segment)
        assert full_segment.total_attempts == 1
        assert full_segment.unique_athletes == 1


class TestReads:
    @pytest.fixture
    def populated(self, session, full_segment):
        alice = make_user(session, "alice", gender=Gender.FEMALE)
        bruno = make_user(session, "bruno", gender=Gender.MALE)
        runs = [
            (alice, 600, datetime(2026, 5, 1, 8)),
            (alice, 550, datetime(2026, 5, 2, 8)),
            (bruno, 580, datetime(2026, 5, 3, 8)),
        ]
        for user, duration, completed_at in runs:
            activity = make_activity(session, user, ROUTE, duration_seconds=duration, completed_at=completed_at)
            segment_matcher_service.process_activity(session, activity)
        session.refresh(full_segment)
        return full_segment, alice, bruno

    def test_leaderboard_unique_per_user(self, session, populated):
        segment, alice, bruno = populated
        board = segment_matcher_service.get_leaderboard(session, segment)
        assert [(e.user_id, e.duration_seconds) for e in board] == [(alice.id, 550), (bruno.id, 580)]
        assert len(segment_matcher_service.get_leaderboard(session, segment, limit=1)) == 1

    def test_counters(self, session, populated):
        segment, alice, bruno = populated
        assert segment.total_attempts == 3
        assert segment.unique_athletes == 2
        assert segment_matcher_service.count_user_attempts(session, alice.id, segment.id) == 2
        assert segment_matcher_service.count_user_attempts(session, bruno.id, segment.id) == 1

    def test_kom_and_qom_holders(self, session, populated):
        segment, alice, bruno = populated
        qom = segment_matcher_service.get_kom_holder(session, segment, Gender.FEMALE)
        assert qom is not None and qom.user_id == alice.id
        assert segment_matcher_service.get_kom_holder(session, segment, Gender.MALE) is None

    def test_achievements(self, session, populated):
        segment, alice, bruno = populated
        [crown] = segment_matcher_service.get_user_kom_qom_achievements(session, alice.id)
        assert crown.duration_seconds == 550
        assert segment_matcher_service.get_user_kom_qom_achievements(session, bruno.id) == []

    def test_personal_records_newest_first(self, session, creator, populated):
        segment, alice, _ = populated
        other = make_segment(session, creator, ROUTE, name="Doublon")
        activity = make_activity(session, alice, ROUTE, duration_seconds=700, completed_at=datetime(2026, 5, 9, 8))
        segment_matcher_service.process_activity(session, activity)

        records = segment_matcher_service.get_user_personal_records(session, alice.id)
        assert [r.segment_id for r in records[:1]] == [other.id]
        assert {r.segment_id for r in records} == {segment.id, other.id}


class TestConcurrentMatching:
    def test_stale_segment_in_second_session(self, engine, session, full_segment):
        first = make_user(session, "user1")
        second = make_user(session, "user2")
        slow = make_activity(session, first, ROUTE, duration_seconds=600)
        fast = make_activity(session, second, ROUTE, duration_seconds=500)

        with Session(engine) as other:
            # Segment charge par le second worker avant le commit du premier
            loaded = geo_query_service.find_candidate_segments(other, other.get(Activity, fast.id))
            assert [s.total_attempts for s in loaded] == [0]

            segment_matcher_service.process_activity(session, slow)
            segment_matcher_service.process_activity(other, other.get(Activity, fast.id))

        session.expire_all()
        segment = session.get(Segment, full_segment.id)
        assert segment.total_attempts == 2
        assert segment.unique_athletes == 2

        efforts = _efforts(session, full_segment)
        assert sum(e.is_kom for e in efforts.values()) == 1
        assert efforts[second.id].is_kom
        assert (efforts[second.id].rank_overall, efforts[first.id].rank_overall) == (1, 2)

    def test_counters_match_effort_rows(self, engine, session, full_segment):
        activity_ids = []
        for index in range(3):
            user = make_user(session, f"coureur{index}")
            activity_ids.append(make_activity(session, user, ROUTE, duration_seconds=500 + index * 10).id)

        workers = [Session(engine) for _ in activity_ids]
        try:
            loaded = [worker.exec(select(Segment)).all() for worker in workers]
            for worker, activity_id in zip(workers, activity_ids):
                segment_matcher_service.process_activity(worker, worker.get(Activity, activity_id))
        finally:
            for worker in workers:
                worker.close()

        assert all(len(segments) == 1 for segments in loaded)
        session.expire_all()
        rows = session.exec(select(SegmentEffort).where(SegmentEffort.segment_id == full_segment.id)).all()
        assert session.get(Segment, full_segment.id).total_attempts == len(rows) == 3
        assert sorted(e.rank_overall for e in rows) == [1, 2, 3]
        assert sum(e.is_kom for e in rows) == 1


class TestSegmentLocks:
    def test_same_segment_same_lock(self, session, full_segment):
        assert segment_lock_for(full_segment.id) is segment_lock_for(full_segment.id)

    def test_lock_pool_is_bounded(self):
        locks = {id(segment_lock_for(uuid4())) for _ in range(1000)}
        assert len(locks) <= SEGMENT_LOCK_STRIPES


class TestCustomGeoQuery:
    def test_injected_geo_query_is_used(self, session, creator, full_segment):
        matcher = SegmentMatcherService(geo_query=geo_query_service)
        activity = make_activity(session, creator, ROUTE)
        assert len(matcher.process_activity(session, activity)) == 1
