"""
Test SCKM model lifecycle: train, same_cluster, update_data
"""

import threading

import numpy as np
import pytest

from sckm import (
    SCKM,
    SCKMConfig,
    BoolPoint,
    ClusterCountJob,
    Connectivity,
    Label,
    LabelBoolPoint,
    TaskState,
    DatasetError,
    DimensionMismatchError,
    NotReadyError,
    NotTrainedError,
    TrainingCancelledError,
    UpdateTimeoutError,
)


def make_point(bits: str, label=None) -> LabelBoolPoint:
    return LabelBoolPoint(BoolPoint.from_bits(bits), label)


def scenario_data() -> list[LabelBoolPoint]:
    return [
        make_point("000", Label.ACCEPT),
        make_point("001", Label.ACCEPT),
        make_point("110", Label.MALWARE),
        make_point("111", Label.MALWARE),
    ]


def random_data(seed: int, n: int = 30, d: int = 10, labeled: bool = True) -> list[LabelBoolPoint]:
    rng = np.random.default_rng(seed)
    labels = [Label.MALWARE, Label.ACCEPT, None, None, None] if labeled else [None]
    return [
        LabelBoolPoint(BoolPoint(tuple(bool(v) for v in row)), labels[rng.integers(len(labels))])
        for row in rng.random((n, d)) < 0.5
    ]


class GatedLogger:
    """Duck-typed logger that holds training inside its first iteration."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.events = []

    def log_training_start(self, **kwargs):
        self.events.append("training_start")

    def log_iteration(self, iteration, moved, num_clusters):
        self.events.append("iteration")
        if iteration == 1:
            self.entered.set()
            self.release.wait(timeout=5)

    def log_training_end(self, **kwargs):
        self.events.append("training_end")

    def log_training_cancelled(self, iterations):
        self.events.append("training_cancelled")

    def log_data_update(self, num_points, dimension):
        self.events.append("data_update")

    def log_error(self, message, operation=None, error_type="error"):
        self.events.append("error")

    def close(self):
        pass


def start_training(model: SCKM, eta: int, errors: list) -> threading.Thread:
    def run():
        try:
            model.train(eta)
        except Exception as e:
            errors.append(e)

    worker = threading.Thread(target=run)
    worker.start()
    return worker


def test_scenario_two_clusters():
    """Four 3-bit points, two accept and two malware, eta = 5."""
    print("Testing four-point scenario...")
    model = SCKM(scenario_data())
    trained = model.train(5)

    assert trained.cluster_count == 2
    assert trained.converged
    assert model.state == TaskState.DONE
    assert model.num_clusters == 2
    assert model.cluster_count_job == ClusterCountJob.resolved(2)
    assert model.centers == [BoolPoint.from_bits("000"), BoolPoint.from_bits("110")]
    assert model.assignment == [0, 0, 1, 1]
    print(f"  ✓ Centers: {[c.to_bits() for c in model.centers]}")

    assert model.same_cluster([0, 0, 0], [0, 0, 1]) == Connectivity.LINKED
    assert model.same_cluster([False, False, False], [True, True, True]) == Connectivity.SEPARATE
    print("  ✓ same_cluster linked/separate")


def test_eta_zero_keeps_singletons():
    data = scenario_data()
    model = SCKM(data)
    trained = model.train(0)

    assert trained.iterations == 0
    assert trained.cluster_count == len(data)
    assert model.assignment == [0, 1, 2, 3]
    assert model.centers == [p.data for p in data]
    assert model.state == TaskState.DONE


def test_same_cluster_before_train():
    model = SCKM(scenario_data())
    with pytest.raises(NotTrainedError):
        model.same_cluster([0, 0, 0], [0, 0, 1])
    with pytest.raises(NotTrainedError):
        model.assignment
    assert model.state == TaskState.READY


def test_train_rejected_once_done():
    model = SCKM(scenario_data())
    model.train(5)
    with pytest.raises(NotReadyError):
        model.train(5)
    assert model.state == TaskState.DONE


def test_train_rejects_bad_eta():
    model = SCKM(scenario_data())
    with pytest.raises(ValueError):
        model.train(-1)
    with pytest.raises(ValueError):
        model.train(2.5)
    assert model.state == TaskState.READY


def test_train_uses_default_eta():
    model = SCKM(scenario_data(), config=SCKMConfig(default_eta=0))
    assert model.train().cluster_count == 4


def test_assignment_complete_after_train():
    for seed in range(5):
        data = random_data(seed)
        model = SCKM(data)
        model.train(25)
        assignment = model.assignment
        assert len(assignment) == len(data)
        assert all(0 <= i < model.num_clusters for i in assignment)


def test_same_cluster_idempotent():
    model = SCKM(random_data(3))
    model.train(25)
    rng = np.random.default_rng(99)
    for _ in range(20):
        a, b = (rng.random((2, 10)) < 0.5).tolist()
        assert model.same_cluster(a, b) == model.same_cluster(a, b)


def test_cluster_count_never_grows():
    for seed in range(5):
        data = random_data(seed, n=40)
        trained = SCKM(data).train(30)
        counts = [len(data)] + list(trained.history)
        assert all(b <= a for a, b in zip(counts, counts[1:]))


def test_no_cluster_mixes_labels():
    for seed in range(5):
        model = SCKM(random_data(seed, n=50))
        model.train(30)
        for cluster in model.cluster_summary():
            assert not (cluster["malware"] and cluster["accept"])


def test_update_then_train_matches_fresh_model():
    new_data = random_data(5)

    updated = SCKM(scenario_data())
    updated.train(5)
    updated.update_data(new_data)
    assert updated.state == TaskState.READY
    assert updated.cluster_count_job == ClusterCountJob.make()
    first = updated.train(25)

    fresh = SCKM(new_data)
    second = fresh.train(25)

    assert first == second
    assert updated.assignment == fresh.assignment
    assert updated.centers == fresh.centers


def test_update_data_changes_dimension():
    model = SCKM(scenario_data())
    model.update_data([make_point("0101"), make_point("0100")])
    assert model.dimension == 4
    assert model.size == 2
    model.train(5)
    assert model.same_cluster([0, 1, 0, 1], [0, 1, 0, 0]) == Connectivity.LINKED


def test_update_data_rejects_bad_data():
    model = SCKM(scenario_data())
    model.train(5)
    with pytest.raises(DatasetError):
        model.update_data([])
    with pytest.raises(DimensionMismatchError):
        model.update_data([make_point("01"), make_point("011")])
    # Trained results survive a rejected update
    assert model.state == TaskState.DONE
    assert model.num_clusters == 2


def test_dimension_mismatch():
    with pytest.raises(DimensionMismatchError):
        SCKM([make_point("01"), make_point("0")])

    model = SCKM(scenario_data())
    model.train(5)
    with pytest.raises(DimensionMismatchError):
        model.same_cluster([0, 0], [0, 0, 1])
    with pytest.raises(DimensionMismatchError):
        model.predict([1, 1, 1, 1])


def test_predict():
    model = SCKM(scenario_data())
    model.train(5)
    assert model.predict([0, 1, 0]) == 0
    assert model.predict(BoolPoint.from_bits("111")) == 1


def test_pending_blocks_everything():
    """While training is pending: train, same_cluster and update_data all back off."""
    logger = GatedLogger()
    model = SCKM(scenario_data(), logger=logger)
    errors = []
    worker = start_training(model, 5, errors)
    assert logger.entered.wait(timeout=5)

    try:
        assert model.state == TaskState.PENDING
        assert model.cluster_count_job == ClusterCountJob.pending()
        with pytest.raises(NotReadyError):
            model.train(5)
        with pytest.raises(NotTrainedError):
            model.same_cluster([0, 0, 0], [0, 0, 1])
        with pytest.raises(UpdateTimeoutError):
            model.update_data(scenario_data(), timeout=0.05)
    finally:
        logger.release.set()
        worker.join(timeout=5)

    assert errors == []
    assert model.state == TaskState.DONE
    assert model.num_clusters == 2


def test_update_data_waits_for_training():
    logger = GatedLogger()
    model = SCKM(scenario_data(), logger=logger)
    errors = []
    worker = start_training(model, 5, errors)
    assert logger.entered.wait(timeout=5)

    updated = threading.Event()

    def update():
        model.update_data([make_point("01"), make_point("10")], timeout=5)
        updated.set()

    updater = threading.Thread(target=update)
    updater.start()
    assert not updated.wait(timeout=0.05)

    logger.release.set()
    worker.join(timeout=5)
    updater.join(timeout=5)

    assert errors == []
    assert updated.is_set()
    assert model.state == TaskState.READY
    assert model.dimension == 2
    assert logger.events[-1] == "data_update"


def test_cancel_keeps_partial_progress():
    logger = GatedLogger()
    model = SCKM(scenario_data(), logger=logger)
    assert model.cancel() is False

    errors = []
    worker = start_training(model, 5, errors)
    assert logger.entered.wait(timeout=5)
    assert model.cancel() is True
    logger.release.set()
    worker.join(timeout=5)

    assert len(errors) == 1
    assert isinstance(errors[0], TrainingCancelledError)
    assert errors[0].iterations == 1
    assert model.state == TaskState.READY
    assert model.cluster_count_job == ClusterCountJob.make()
    assert "training_cancelled" in logger.events

    # Resumes from the merged state and converges at once
    trained = model.train(5)
    assert trained.iterations == 1
    assert trained.cluster_count == 2


def test_wait_until_trained():
    logger = GatedLogger()
    model = SCKM(scenario_data(), logger=logger)
    errors = []
    worker = start_training(model, 5, errors)
    assert logger.entered.wait(timeout=5)

    with pytest.raises(UpdateTimeoutError):
        model.wait_until_trained(timeout=0.01)
    logger.release.set()
    assert model.wait_until_trained(timeout=5) == TaskState.DONE
    worker.join(timeout=5)

@pytest.mark.parametrize("seed", range(6))
@pytest.mark.parametrize("labeled", [True, False])
def test_training_converges_and_stays_put(seed, labeled):
    """Once converged, a larger eta gives the same clustering."""
    for n, d in [(16, 3), (30, 10)]:
        data = random_data(seed, n=n, d=d, labeled=labeled)
        trained = SCKM(data).train(1000)
        assert trained.converged

        k = trained.iterations
        exact = SCKM(data)
        exact.train(k)
        longer = SCKM(data)
        longer.train(k + 1)
        assert exact.assignment == longer.assignment
        assert exact.centers == longer.centers


def test_large_eta_parity_does_not_matter():
    data = random_data(1, n=16, d=3, labeled=False)
    even = SCKM(data)
    even.train(200)
    odd = SCKM(data)
    odd.train(201)
    assert even.assignment == odd.assignment


def test_interrupt_during_training_resets_state():
    class InterruptingLogger(GatedLogger):
        def log_iteration(self, iteration, moved, num_clusters):
            raise KeyboardInterrupt

    model = SCKM(scenario_data(), logger=InterruptingLogger())
    with pytest.raises(KeyboardInterrupt):
        model.train(5)

    assert model.state == TaskState.READY
    assert model.cluster_count_job == ClusterCountJob.make()
    assert model.train(5).cluster_count == 2


def test_bad_data_opens_no_log_file(tmp_path):
    with pytest.raises(DatasetError):
        SCKM([], config=SCKMConfig(log_dir=str(tmp_path)))
    with pytest.raises(DimensionMismatchError):
        SCKM([make_point("01"), make_point("011")], config=SCKMConfig(log_dir=str(tmp_path)))

    assert not (tmp_path / "training.jsonl").exists()


def test_update_data_none_timeout_waits_forever():
    logger = GatedLogger()
    model = SCKM(scenario_data(), config=SCKMConfig(update_timeout=0.01), logger=logger)
    errors = []
    worker = start_training(model, 5, errors)
    assert logger.entered.wait(timeout=5)

    updated = threading.Event()

    def update():
        try:
            model.update_data([make_point("01")], timeout=None)
        except Exception as e:
            errors.append(e)
        updated.set()

    updater = threading.Thread(target=update)
    updater.start()
    assert not updated.wait(timeout=0.1)

    logger.release.set()
    worker.join(timeout=5)
    updater.join(timeout=5)

    assert errors == []
    assert updated.is_set()
    assert model.state == TaskState.READY
    assert model.dimension == 2


def test_update_data_default_timeout_from_config():
    model = SCKM(scenario_data(), config=SCKMConfig(update_timeout=0.01))
    model._controller.begin_training()
    with pytest.raises(UpdateTimeoutError):
        model.update_data(scenario_data())



def test_verbose_output(capsys):
    model = SCKM(scenario_data(), config=SCKMConfig(verbose=True))
    model.train(5)
    out = capsys.readouterr().out
    assert "Training on 4 points" in out
    assert "2 clusters after 2 iterations (converged)" in out


def run_all_tests():
    """Run the scenario tests"""
    print("=" * 60)
    print("SCKM MODEL VALIDATION")
    print("=" * 60)
    print()

    test_scenario_two_clusters()
    test_eta_zero_keeps_singletons()
    test_same_cluster_before_train()
    test_update_then_train_matches_fresh_model()

    print()
    print("=" * 60)
    print("✅ ALL MODEL TESTS PASSED")
    print("=" * 60)


if __name__ == "__main__":
    run_all_tests()
