"""
Demo session tying the pipeline together: load -> train both models -> compare.

A DemoSession owns every store and model of one demo run and reports progress as
plain status strings, so any front end (the `train.py` runner, a notebook, a web
page) can drive it without reaching into module-level state.
"""

import logging
import random
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, List, NamedTuple, Optional, Sequence

import config
from towerrec.data.dataset import MovieLensDataset
from towerrec.data.loader import read_movielens
from towerrec.exceptions import DataLoadError, NotReadyError, TrainingInProgressError
from towerrec.features.features import FeatureEncoder
from towerrec.models.retrieval import recommend
from towerrec.models.trainer import ContrastiveTrainer, fit_two_towers
from towerrec.models.two_tower import DeepTwoTowerModel, SimpleTwoTowerModel
from towerrec.utils.utils import prepare_data_loader, set_seed
from towerrec.visualization.embeddings import project_item_embeddings

log = logging.getLogger(__name__)


@dataclass
class DemoConfig:
    max_interactions: int = config.MAX_INTERACTIONS
    embedding_dim: int = config.EMBEDDING_DIM
    batch_size: int = config.BATCH_SIZE
    epochs: int = config.EPOCHS
    learning_rate: float = config.LEARNING_RATE
    # [hidden width, output width] of the deep towers
    hidden_layers: Optional[Sequence[int]] = None
    seed: Optional[int] = config.RANDOM_SEED
    device: str = config.DEVICE
    top_k: int = config.EVAL_K
    status_every: int = config.STATUS_EVERY
    projection_sample_size: int = config.PROJECTION_SAMPLE_SIZE

    def __post_init__(self):
        if self.hidden_layers is None:
            self.hidden_layers = [config.DEEP_HIDDEN_DIM, self.embedding_dim]


class RankedRow(NamedTuple):
    title: str
    value: float  # rating for history rows, score for recommendations
    year: Optional[int]


@dataclass
class Comparison:
    user_id: int
    historical: List[RankedRow] = field(default_factory=list)
    simple: List[RankedRow] = field(default_factory=list)
    deep: List[RankedRow] = field(default_factory=list)


class DemoSession:
    """
    Control class for one demo run.

    Processing Pipeline:
        1. load(): parse and index MovieLens records.
        2. train(): fit the simple and the deep two-tower model on the same batches.
        3. visualize(): 2D projection of deep item embeddings (also run after train()).
        4. test(): top-K recommendations of both models for a qualified user.
    """

    def __init__(self, demo_config=None, status: Optional[Callable[[str], None]] = None):
        """
        Args:
            demo_config (DemoConfig): Hyperparameters; defaults come from config.py.
            status: Optional callable receiving every status message.
        """
        self.config = demo_config or DemoConfig()
        self._status = status

        self.dataset = None
        self.encoder = None
        self.simple_model = None
        self.deep_model = None

        self.loss_history: List[float] = []
        self.epoch_results = []
        self.projection = None
        self.is_training = False

    def update_status(self, message):
        log.info(message)
        if self._status is not None:
            self._status(message)

    # --- Loading ---

    def load(self, data_dir=config.DATA_DIR):
        """
        Read u.data, u.item and u.user from `data_dir` and index them.

        Raises:
            DataLoadError: Nothing is replaced when loading fails.
        """
        self.update_status('Loading data... (interactions, items, users)')
        try:
            interactions, items, users = read_movielens(data_dir, self.config.max_interactions)
        except DataLoadError as e:
            self.update_status(
                f"{e}. Make sure u.data, u.item, and u.user are in '{data_dir}'.")
            raise
        return self.load_records(interactions, items, users)

    def load_records(self, interactions, items, users):
        """
        Index already parsed records, truncating interactions to `max_interactions`.

        Returns:
            MovieLensDataset
        """
        try:
            dataset = MovieLensDataset(
                interactions[:self.config.max_interactions], items, users)
            missing_users, missing_items = dataset.missing_records()
            if missing_users or missing_items:
                raise DataLoadError(
                    f"interactions reference {len(missing_users)} unknown users "
                    f"and {len(missing_items)} unknown items")
            encoder = FeatureEncoder(users, items, dataset.occupation_vocab)
        except Exception as e:
            self.update_status(f"Error loading data: {e}")
            if isinstance(e, DataLoadError):
                raise
            raise DataLoadError(str(e)) from e

        self.dataset = dataset
        self.encoder = encoder
        # models trained on a previous dataset do not fit the new index spaces
        self.simple_model = None
        self.deep_model = None
        self.projection = None

        self.update_status(
            f"Loaded {len(dataset.interactions)} interactions, {len(items)} items, "
            f"{len(users)} users. Ready to train.")
        return dataset

    # --- Training ---

    @contextmanager
    def _training_guard(self):
        if self.is_training:
            raise TrainingInProgressError('Training is already running.')
        self.is_training = True
        try:
            yield
        finally:
            self.is_training = False

    def _build_models(self):
        cfg = self.config
        simple = SimpleTwoTowerModel(
            self.dataset.num_users, self.dataset.num_items, cfg.embedding_dim)
        deep = DeepTwoTowerModel(
            self.dataset.num_users, self.dataset.num_items, cfg.embedding_dim,
            self.encoder.user_feature_dim, self.encoder.item_feature_dim,
            hidden_layers=cfg.hidden_layers)
        return simple, deep

    def train(self, cancel_event=None, progress=None):
        """
        Train both models from scratch.

        Args:
            cancel_event (threading.Event): Stops training between batches when set.
            progress: Optional callable(epoch, batch, num_batches, simple_loss, deep_loss).

        Returns:
            TrainingHistory

        Raises:
            NotReadyError: If no data is loaded.
            TrainingInProgressError: If a run is already active.
        """
        if self.dataset is None:
            self.update_status('Load data before training.')
            raise NotReadyError('Load data before training.')

        with self._training_guard():
            cfg = self.config
            loss_history = []
            epoch_results = []
            self.update_status('Initializing models...')

            if cfg.seed is not None:
                set_seed(cfg.seed)
            simple, deep = self._build_models()
            simple_trainer = ContrastiveTrainer(simple, lr=cfg.learning_rate, device=cfg.device)
            deep_trainer = ContrastiveTrainer(deep, lr=cfg.learning_rate, device=cfg.device)
            loader = prepare_data_loader(self.dataset, self.encoder, cfg.batch_size)

            def on_batch(epoch, batch, num_batches, loss_simple, loss_deep):
                loss_history.append(loss_deep)
                if batch % cfg.status_every == 0:
                    self.update_status(
                        f"Epoch {epoch + 1}/{cfg.epochs}, Batch {batch}/{num_batches}, "
                        f"Deep Loss: {loss_deep:.4f}")
                if progress is not None:
                    progress(epoch, batch, num_batches, loss_simple, loss_deep)

            def on_epoch(result):
                epoch_results.append(result)
                self.update_status(
                    f"Epoch {result.epoch} done. Avg Simple Loss: {result.simple_loss:.4f}, "
                    f"Avg Deep Loss: {result.deep_loss:.4f}")

            self.update_status('Starting training for both models...')
            history = fit_two_towers(
                simple_trainer, deep_trainer, loader, epochs=cfg.epochs,
                on_batch=on_batch, on_epoch=on_epoch, cancel_event=cancel_event)

            # a failed run leaves the previous models and their losses together
            self.simple_model = simple
            self.deep_model = deep
            self.loss_history = loss_history
            self.epoch_results = epoch_results

        if history.cancelled:
            self.update_status('Training cancelled.')
        else:
            self.update_status('Training completed! Call test() to see recommendations.')
        self.visualize()
        return history

    # --- Visualization ---

    def visualize(self):
        """
        Project a sample of deep item embeddings to 2D.

        Failures are reported through the status channel only.

        Returns:
            numpy array of shape (n, 2), or None
        """
        if self.deep_model is None:
            return None

        self.update_status('Computing embedding visualization from deep model...')
        try:
            self.projection = project_item_embeddings(
                self.deep_model, self.dataset, self.encoder,
                sample_size=self.config.projection_sample_size)
        except Exception as e:
            log.exception("Embedding projection failed")
            self.projection = None
            self.update_status(f"Error in visualization: {e}")
            return None

        self.update_status('Embedding visualization completed.')
        return self.projection

    # --- Testing ---

    def _rows(self, pairs):
        rows = []
        for item_id, value in pairs:
            item = self.dataset.items[item_id]
            rows.append(RankedRow(title=item.title, value=value, year=item.year))
        return rows

    def test(self, user_id=None, rng=None):
        """
        Compare both models' recommendations for one qualified user.

        Args:
            user_id (int): Raw user id of any user with interactions; a random
                qualified user when omitted.
            rng (random.Random): Source of randomness for the user draw.

        Returns:
            Comparison

        Raises:
            NotReadyError: Models are not trained or no user qualifies.
        """
        message = 'Models not trained or no qualified users found.'
        if self.simple_model is None or self.deep_model is None:
            self.update_status(message)
            raise NotReadyError(message)

        if user_id is None:
            if not self.dataset.qualified_users:
                self.update_status(message)
                raise NotReadyError(message)
            user_id = (rng or random).choice(self.dataset.qualified_users)
        elif user_id not in self.dataset.user_map:
            message = f"User {user_id} has no interactions in the loaded data."
            self.update_status(message)
            raise NotReadyError(message)

        self.update_status('Generating recommendations from both models...')
        k = self.config.top_k
        user_index = self.dataset.user_index(user_id)
        history = self.dataset.history(user_id)
        rated_item_ids = self.dataset.rated_item_ids(user_id)

        try:
            recs_simple = recommend(self.simple_model, self.dataset, self.encoder,
                                    user_id, user_index, rated_item_ids, top_k=k)
            recs_deep = recommend(self.deep_model, self.dataset, self.encoder,
                                  user_id, user_index, rated_item_ids, top_k=k)
        except Exception as e:
            self.update_status(f"Error generating recommendations: {e}")
            raise

        comparison = Comparison(
            user_id=user_id,
            historical=self._rows((x.item_id, x.rating) for x in history[:k]),
            simple=self._rows(recs_simple),
            deep=self._rows(recs_deep),
        )
        self.update_status(f"Recommendations generated for User {user_id}.")
        return comparison
