"""
Indexed view over the loaded MovieLens records.
Builds the dense user/item index spaces used as embedding rows, the per-user
rating history and the pool of users qualified for the comparison pass.
"""

import logging
from typing import Dict, List

import numpy as np
import pandas as pd #type: ignore

import config
from towerrec.data.loader import interactions_to_df
from towerrec.features.features import build_occupation_vocab

log = logging.getLogger(__name__)

QUALIFIED_MIN_INTERACTIONS = config.QUALIFIED_MIN_INTERACTIONS


def build_index_map(ids):
    """
    Assign contiguous zero-based indices to distinct ids in first-seen order.

    Args:
        ids: Sequence of raw ids, possibly with repeats.

    Returns:
        tuple: (forward map {raw_id: index}, reverse map {index: raw_id})
    """
    distinct = pd.unique(pd.Series(ids, dtype=np.int64))
    forward = {int(raw_id): index for index, raw_id in enumerate(distinct)}
    reverse = {index: raw_id for raw_id, index in forward.items()}
    return forward, reverse


class MovieLensDataset:
    """
    Interactions, items and users plus every lookup structure derived from them.

    Dense indices are built from the ids that appear in the (already truncated)
    interaction sequence only. Items or users that exist in u.item / u.user but
    were never rated in that sequence have no index and cannot be embedded.
    """

    def __init__(self, interactions, items, users):
        """
        Args:
            interactions (list[Interaction]): Truncated interaction sequence.
            items (dict): {item_id: Item}
            users (dict): {user_id: User}
        """
        self.interactions = list(interactions)
        self.items = items
        self.users = users
        self.ratings_df = interactions_to_df(self.interactions)

        self.occupation_vocab = build_occupation_vocab(
            user.occupation for user in users.values())

        self.user_map, self.reverse_user_map = build_index_map(self.ratings_df['user_id'])
        self.item_map, self.reverse_item_map = build_index_map(self.ratings_df['item_id'])

        self._build_histories()
        self._find_qualified_users()

        log.info("Indexed %d users and %d items from %d interactions (%d qualified users)",
                 self.num_users, self.num_items, len(self.interactions),
                 len(self.qualified_users))

    def _build_histories(self):
        """Group interactions per user, sorted by rating desc then timestamp desc."""
        df = self.ratings_df
        # np.lexsort is stable and sorts by the last key first
        order = np.lexsort((-df['timestamp'].values, -df['rating'].values))

        self.user_top_rated: Dict[int, List] = {user_id: [] for user_id in self.user_map}
        for pos in order:
            interaction = self.interactions[pos]
            self.user_top_rated[interaction.user_id].append(interaction)

    def _find_qualified_users(self):
        counts = self.ratings_df.groupby('user_id', sort=False).size()
        self.qualified_users = [
            user_id for user_id in self.user_map
            if counts[user_id] >= QUALIFIED_MIN_INTERACTIONS
        ]

    @property
    def num_users(self):
        return len(self.user_map)

    @property
    def num_items(self):
        return len(self.item_map)

    def user_index(self, user_id):
        return self.user_map[user_id]

    def item_index(self, item_id):
        return self.item_map[item_id]

    def user_id_at(self, index):
        return self.reverse_user_map[index]

    def item_id_at(self, index):
        return self.reverse_item_map[index]

    def history(self, user_id):
        """Interactions of a user, best rated (then most recent) first."""
        return self.user_top_rated.get(user_id, [])

    def rated_item_ids(self, user_id):
        return {interaction.item_id for interaction in self.history(user_id)}

    def interaction_indices(self):
        """
        Dense (user_idx, item_idx) arrays aligned with the interaction sequence.

        Returns:
            tuple: Two int64 numpy arrays of length len(interactions).
        """
        user_idx = self.ratings_df['user_id'].map(self.user_map).to_numpy(dtype=np.int64, copy=True)
        item_idx = self.ratings_df['item_id'].map(self.item_map).to_numpy(dtype=np.int64, copy=True)
        return user_idx, item_idx

    def missing_records(self):
        """
        Ids referenced by interactions but absent from the user / item tables.

        Returns:
            tuple: (sorted missing user ids, sorted missing item ids)
        """
        missing_users = sorted(set(self.user_map) - set(self.users))
        missing_items = sorted(set(self.item_map) - set(self.items))
        return missing_users, missing_items

    def catalog_item_ids(self):
        """Raw item ids ordered by dense index."""
        return [self.reverse_item_map[index] for index in range(self.num_items)]
