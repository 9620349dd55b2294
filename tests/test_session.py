import random

import pytest

import towerrec.session as session_module
from conftest import item_line
from towerrec.exceptions import DataLoadError, NotReadyError, TrainingInProgressError
from towerrec.session import Comparison, DemoConfig, DemoSession


def _config(**overrides):
    params = dict(embedding_dim=8, batch_size=32, epochs=2, learning_rate=0.01,
                  seed=0, projection_sample_size=20)
    params.update(overrides)
    return DemoConfig(**params)


@pytest.fixture
def messages():
    return []


@pytest.fixture
def session(messages):
    return DemoSession(_config(), status=messages.append)


def test_demo_config_defaults():
    cfg = DemoConfig()

    assert cfg.max_interactions == 80000
    assert cfg.embedding_dim == 32
    assert cfg.batch_size == 512
    assert cfg.epochs == 15
    assert cfg.learning_rate == pytest.approx(0.001)
    assert cfg.hidden_layers == [64, 32]
    assert DemoConfig(embedding_dim=16).hidden_layers == [64, 16]


def test_load_records_scenario(scenario_records, messages):
    session = DemoSession(_config(max_interactions=10), status=messages.append)

    dataset = session.load_records(*scenario_records)

    assert dataset.num_users == 2
    assert dataset.num_items == 2
    assert "Loaded 3 interactions, 2 items, 2 users. Ready to train." in messages


def test_load_records_truncates(records):
    session = DemoSession(_config(max_interactions=12))

    dataset = session.load_records(*records)

    assert len(dataset.interactions) == 12


def test_failed_load_keeps_previous_state(session, records, tmp_path, messages):
    dataset = session.load_records(*records)

    with pytest.raises(DataLoadError):
        session.load(str(tmp_path))

    assert session.dataset is dataset
    assert "Make sure u.data, u.item, and u.user" in messages[-1]


def test_load_rejects_interactions_without_records(session, scenario_records):
    interactions, items, users = scenario_records
    del users[2]

    with pytest.raises(DataLoadError, match="unknown users"):
        session.load_records(interactions, items, users)
    assert session.dataset is None


def test_load_from_directory(session, tmp_path):
    (tmp_path / "u.data").write_text("1\t10\t5\t100\n1\t11\t3\t101\n2\t10\t4\t102\n")
    (tmp_path / "u.item").write_text(
        item_line(10, "Alpha (1994)") + "\n" + item_line(11, "Beta") + "\n")
    (tmp_path / "u.user").write_text("1|30|M|engineer|00000\n2|40|F|artist|11111\n")

    dataset = session.load(str(tmp_path))

    assert dataset.items[10].year == 1994
    assert session.encoder.user_feature_dim == 4


def test_train_requires_data(session):
    with pytest.raises(NotReadyError):
        session.train()


def test_test_requires_trained_models(session, records, messages):
    session.load_records(*records)

    with pytest.raises(NotReadyError):
        session.test()
    assert messages[-1] == 'Models not trained or no qualified users found.'


def test_train_and_test(session, records, messages):
    session.load_records(*records)

    history = session.train()

    num_batches = len(history.loss_history) // 2
    assert session.loss_history == history.loss_history
    assert len(session.epoch_results) == 2
    assert session.is_training is False
    assert session.projection is not None and session.projection.shape == (20, 2)
    assert any(m.startswith("Epoch 1 done. Avg Simple Loss:") for m in messages)
    assert sum(m.startswith("Epoch 1/2, Batch") for m in messages) == (num_batches + 9) // 10

    comparison = session.test(rng=random.Random(3))

    assert isinstance(comparison, Comparison)
    assert comparison.user_id in session.dataset.qualified_users
    assert len(comparison.historical) == 10
    ratings = [row.value for row in comparison.historical]
    assert ratings == sorted(ratings, reverse=True)
    for table in (comparison.simple, comparison.deep):
        assert len(table) == 10
        scores = [row.value for row in table]
        assert scores == sorted(scores, reverse=True)

    rated_titles = {session.dataset.items[i].title
                    for i in session.dataset.rated_item_ids(comparison.user_id)}
    assert not rated_titles & {row.title for row in comparison.simple + comparison.deep}


def test_test_for_explicit_user(session, records):
    session.load_records(*records)
    session.train()

    assert session.test(user_id=5).user_id == 5
    with pytest.raises(NotReadyError):
        session.test(user_id=999)


def test_no_qualified_users(session, scenario_records):
    session.load_records(*scenario_records)
    session.train()

    with pytest.raises(NotReadyError):
        session.test()


def test_reentrant_training_is_refused(session, records):
    session.load_records(*records)
    session.is_training = True

    with pytest.raises(TrainingInProgressError):
        session.train()


def test_training_guard_released_on_error(session, records, monkeypatch):
    session.load_records(*records)

    def boom(*args, **kwargs):
        raise RuntimeError("step failed")

    monkeypatch.setattr(session_module, "fit_two_towers", boom)

    with pytest.raises(RuntimeError):
        session.train()
    assert session.is_training is False
    assert session.simple_model is None


def test_visualization_errors_are_isolated(session, records, messages, monkeypatch):
    session.load_records(*records)

    def boom(*args, **kwargs):
        raise ValueError("bad projection")

    monkeypatch.setattr(session_module, "project_item_embeddings", boom)

    session.train()

    assert session.projection is None
    assert "Error in visualization: bad projection" in messages
    assert session.test(user_id=1).user_id == 1


def test_reload_drops_trained_models(session, records):
    session.load_records(*records)
    session.train()

    session.load_records(*records)

    assert session.simple_model is None
    assert session.deep_model is None


def test_explicit_user_without_qualified_users(session, scenario_records):
    session.load_records(*scenario_records)
    session.train()

    assert session.dataset.qualified_users == []
    comparison = session.test(user_id=1)

    assert comparison.user_id == 1
    assert [row.title for row in comparison.historical] == ['A', 'B']
    with pytest.raises(NotReadyError):
        session.test()


def test_failed_run_keeps_losses_of_kept_models(session, records, monkeypatch):
    session.load_records(*records)
    session.train()
    models = (session.simple_model, session.deep_model)
    losses = list(session.loss_history)
    epochs = list(session.epoch_results)

    def fail_after_one_batch(*args, on_batch=None, **kwargs):
        on_batch(0, 0, 1, 9.0, 9.0)
        raise RuntimeError("step failed")

    monkeypatch.setattr(session_module, "fit_two_towers", fail_after_one_batch)

    with pytest.raises(RuntimeError):
        session.train()
    assert (session.simple_model, session.deep_model) == models
    assert session.loss_history == losses
    assert session.epoch_results == epochs
