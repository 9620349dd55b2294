"""
Contrastive training for the two-tower models.
Uses in-batch sampled softmax: for each (user, item) pair in a batch, every other
item of the same batch acts as a negative. No explicit negative sampling.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import torch
import torch.nn.functional as F
import torch.optim as optim

import config

log = logging.getLogger(__name__)


def in_batch_softmax_loss(user_reps, item_reps):
    """
    Softmax cross-entropy over the in-batch score matrix.

    Row i of `user_reps @ item_reps.T` scores user i against every item of the
    batch; the diagonal holds the observed pairs and is the target class. A user
    appearing twice in one batch can therefore see its other positive as a
    negative; that is left uncorrected.

    Args:
        user_reps (torch.Tensor): (B, D) user representations.
        item_reps (torch.Tensor): (B, D) item representations.

    Returns:
        tuple: (mean loss scalar, logits of shape (B, B))
    """
    logits = user_reps @ item_reps.t()
    labels = torch.arange(logits.size(0), device=logits.device)
    return F.cross_entropy(logits, labels), logits


class ContrastiveTrainer:
    """
    Owns one model and its Adam optimizer and performs single training steps.
    """

    def __init__(self, model, lr=config.LEARNING_RATE, device='cpu'):
        self.device = device
        self.model = model.to(device)
        self.optimizer = optim.Adam(self.model.parameters(), lr=lr)

    def _to_device(self, tensor):
        return None if tensor is None else tensor.to(self.device)

    def train_step(self, user_idx, item_idx, user_features=None, item_features=None):
        """
        Run forward, loss, backward and one optimizer update on a batch.

        Feature tensors are only passed to models that declare
        `requires_features`.

        Returns:
            float: The batch loss.
        """
        self.model.train()
        user_idx = user_idx.to(self.device)
        item_idx = item_idx.to(self.device)

        if self.model.requires_features:
            user_features = self._to_device(user_features)
            item_features = self._to_device(item_features)
        else:
            user_features = item_features = None

        user_reps = self.model.user_forward(user_idx, user_features)
        item_reps = self.model.item_forward(item_idx, item_features)
        loss, _ = in_batch_softmax_loss(user_reps, item_reps)

        self.optimizer.zero_grad()
        loss.backward()
        self.optimizer.step()
        return loss.item()


@dataclass
class EpochResult:
    epoch: int
    simple_loss: float
    deep_loss: float
    batches: int


@dataclass
class TrainingHistory:
    epochs: List[EpochResult] = field(default_factory=list)
    # deep-model loss of every batch, in order
    loss_history: List[float] = field(default_factory=list)
    cancelled: bool = False


def fit_two_towers(simple_trainer, deep_trainer, loader, epochs=config.EPOCHS,
                   on_batch=None, on_epoch=None, cancel_event=None):
    """
    Train both models on identical, sequential batch boundaries.

    For every batch the simple model is fully updated before the deep model.

    Args:
        simple_trainer (ContrastiveTrainer): Trainer for the embedding-only model.
        deep_trainer (ContrastiveTrainer): Trainer for the feature-enriched model.
        loader (DataLoader): Non-shuffled batches from `prepare_data_loader`.
        epochs (int): Passes over the loader.
        on_batch: Optional callable(epoch, batch, num_batches, simple_loss, deep_loss).
        on_epoch: Optional callable(EpochResult).
        cancel_event (threading.Event): Checked between batches; stops early when set.

    Returns:
        TrainingHistory
    """
    history = TrainingHistory()
    num_batches = len(loader)

    for epoch in range(epochs):
        epoch_loss_simple = 0.0
        epoch_loss_deep = 0.0

        for batch, (user_idx, item_idx, user_features, item_features) in enumerate(loader):
            if cancel_event is not None and cancel_event.is_set():
                log.info("Training cancelled at epoch %d, batch %d", epoch + 1, batch)
                history.cancelled = True
                return history

            loss_simple = simple_trainer.train_step(user_idx, item_idx)
            loss_deep = deep_trainer.train_step(user_idx, item_idx, user_features, item_features)

            epoch_loss_simple += loss_simple
            epoch_loss_deep += loss_deep
            history.loss_history.append(loss_deep)

            if on_batch is not None:
                on_batch(epoch, batch, num_batches, loss_simple, loss_deep)

        result = EpochResult(
            epoch=epoch + 1,
            simple_loss=epoch_loss_simple / max(num_batches, 1),
            deep_loss=epoch_loss_deep / max(num_batches, 1),
            batches=num_batches,
        )
        history.epochs.append(result)
        log.info("Epoch %d/%d | simple_loss=%.4f | deep_loss=%.4f",
                 result.epoch, epochs, result.simple_loss, result.deep_loss)
        if on_epoch is not None:
            on_epoch(result)

    return history
