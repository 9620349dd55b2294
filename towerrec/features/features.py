"""
Feature Engineering for ML-100k dataset.
Encodes user demographics and item genres as the side-information vectors
consumed by the deep two-tower model.
"""

import numpy as np

from towerrec.data.loader import NUM_GENRES


def build_occupation_vocab(occupations):
    """
    Map each distinct occupation to its position in lexicographic order.

    Args:
        occupations: Iterable of occupation strings, repeats allowed.

    Returns:
        dict: {occupation: index}
    """
    return {occ: i for i, occ in enumerate(sorted(set(occupations)))}


class FeatureEncoder:
    """
    Builds fixed-length numeric feature vectors for users and items.
    User features: [age, gender, occupation one-hot]
    Item features: genre flags (19)

    The encoder holds no mutable state after construction, so it can be shared
    freely between training and ranking.
    """

    def __init__(self, users, items, occupation_vocab):
        """
        Args:
            users (dict): {user_id: User}
            items (dict): {item_id: Item}
            occupation_vocab (dict): {occupation: index}
        """
        self.users = users
        self.items = items
        self.occupation_vocab = occupation_vocab

    @property
    def user_feature_dim(self):
        return 2 + len(self.occupation_vocab)

    @property
    def item_feature_dim(self):
        return NUM_GENRES

    def user_features(self, user_id):
        """
        Get feature vector for a user.

        An occupation missing from the vocabulary leaves the one-hot part all zero.

        Returns:
            numpy array: [age, gender, one-hot occupation] of length user_feature_dim
        """
        user = self.users[user_id]
        features = np.zeros(self.user_feature_dim, dtype=np.float32)
        features[0] = user.age
        features[1] = user.gender

        occupation_index = self.occupation_vocab.get(user.occupation)
        if occupation_index is not None:
            features[2 + occupation_index] = 1.0
        return features

    def item_features(self, item_id):
        """Get the genre flag vector for an item."""
        return np.asarray(self.items[item_id].genres, dtype=np.float32)

    def user_feature_matrix(self, user_ids):
        """Stack user feature vectors into an array of shape (n, user_feature_dim)."""
        if len(user_ids) == 0:
            return np.zeros((0, self.user_feature_dim), dtype=np.float32)
        return np.stack([self.user_features(user_id) for user_id in user_ids])

    def item_feature_matrix(self, item_ids):
        """Stack item feature vectors into an array of shape (n, item_feature_dim)."""
        if len(item_ids) == 0:
            return np.zeros((0, self.item_feature_dim), dtype=np.float32)
        return np.stack([self.item_features(item_id) for item_id in item_ids])
