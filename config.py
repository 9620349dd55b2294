"""
Central Configuration for the two-tower recommender demo.
Contains global constants, file paths, model hyperparameters, and execution flags.
Values defined here are the defaults behind `towerrec.session.DemoConfig`.
"""

# --- File System Paths ---
DATA_DIR = 'ml-100k'
RATINGS_FILE = 'u.data'
MOVIES_FILE = 'u.item'
USERS_FILE = 'u.user'

# Info
NUM_GENRES = 19

# --- Data Loading ---
MAX_INTERACTIONS = 80000  # first N rows of u.data, file order
QUALIFIED_MIN_INTERACTIONS = 20

# --- Two-Tower Models ---
EMBEDDING_DIM = 32
EMBEDDING_INIT_STD = 0.05
DEEP_HIDDEN_DIM = 64  # output width of the deep towers defaults to EMBEDDING_DIM

# --- Training ---
BATCH_SIZE = 512
EPOCHS = 15
LEARNING_RATE = 0.001
RANDOM_SEED = 42
STATUS_EVERY = 10  # batches between progress messages

# --- Evaluation / Display ---
EVAL_K = 10
PROJECTION_SAMPLE_SIZE = 500

# Device
DEVICE = 'cpu'

# Logging
LOG_LEVEL = 'INFO'
