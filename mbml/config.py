"""
Global configuration for the chapter models and experiments
"""
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "outputs"


@dataclass
class MurderMysteryConfig:
    """Chapter 1 priors and conditional probability tables"""

    PRIOR_GREY: float = 0.3
    PRIOR_AUBURN: float = 0.7

    # Weapon index 0 is the revolver, 1 the dagger
    WEAPON_GIVEN_GREY: Tuple[float, float] = (0.9, 0.1)
    WEAPON_GIVEN_AUBURN: Tuple[float, float] = (0.2, 0.8)

    HAIR_GIVEN_GREY: float = 0.5
    HAIR_GIVEN_AUBURN: float = 0.05


@dataclass
class SkillsConfig:
    """Chapter 2 noisy-AND parameters"""

    SKILL_PRIOR: float = 0.5
    PROB_GUESS: float = 0.2
    PROB_NOT_MISTAKE: float = 0.9

    # Beta prior over per-question guess probabilities
    GUESS_PRIOR: Tuple[float, float] = (2.5, 7.5)

    SVI_STEPS: int = 400
    LEARNING_RATE: float = 0.05
    CALIBRATION_BINS: int = 5
    SEED: int = 0


@dataclass
class TrueSkillConfig:
    """Chapter 3 default skill and performance parameters"""

    MU: float = 25.0
    SIGMA: float = 25.0 / 3
    BETA: float = 25.0 / 6
    GAMMA: float = 25.0 / 300
    DRAW_PROBABILITY: float = 0.1

    # Toy inputs used by the textbook examples
    TOY_MU: float = 120.0
    TOY_SIGMA: float = 40.0
    TOY_BETA: float = 5.0
    TOY_GAMMA: float = 1.2

    EP_ITERATIONS: int = 10
    TOP_PLAYERS: int = 10
    SEED: int = 0


@dataclass
class InboxConfig:
    """Chapter 4 reply prediction parameters"""

    WEIGHT_PRIOR_MEAN: float = 0.0
    WEIGHT_PRIOR_VARIANCE: float = 1.0
    THRESHOLD_PRIOR_MEAN: float = 0.0
    THRESHOLD_PRIOR_VARIANCE: float = 10.0
    NOISE_VARIANCE: float = 10.0

    # Community prior over weight means/precisions
    WEIGHT_MEAN_PRIOR_VARIANCE: float = 1.0
    WEIGHT_PRECISION_SHAPE: float = 2.0
    WEIGHT_PRECISION_RATE: float = 2.0

    # Upper bounds of each length bucket, in characters
    BODY_LENGTH_BINS: List[int] = field(default_factory=lambda: [0, 4, 8, 16, 32, 64, 128, 256, 512, 1023, 2 ** 31 - 1])
    SUBJECT_LENGTH_BINS: List[int] = field(default_factory=lambda: [0, 2, 4, 8, 16, 32, 64, 2 ** 31 - 1])
    # Lower case prefixes before the first colon of a subject
    SUBJECT_PREFIXES: List[List[str]] = field(default_factory=lambda: [["re"], ["fw", "fwd"]])
    SPLIT_FRACTIONS: Tuple[float, float, float] = (0.6, 0.2, 0.2)

    CALIBRATION_BINS: int = 11
    MIN_BIN_COUNT: int = 10
    RECALL_WINDOW: Tuple[float, float] = (0.1, 0.9)
    ONLINE_BATCH_SIZES: List[int] = field(default_factory=lambda: [1, 5, 10, 50])

    SVI_STEPS: int = 300
    LEARNING_RATE: float = 0.05
    SEED: int = 0


@dataclass
class RecommenderConfig:
    """Chapter 5 recommender parameters"""

    SEED: int = 1984
    ITERATIONS_FULL: int = 200
    ITERATIONS_FAST: int = 30
    AFFINITY_NOISE_VARIANCE: float = 1.0
    BIAS_VARIANCE: float = 1.0
    THRESHOLD_PRIOR_VARIANCE: float = 10.0
    USER_THRESHOLD_VARIANCE: float = 0.5
    TRAIN_FRACTION: float = 0.7
    NDCG_RANK: int = 5
    LEARNING_RATE: float = 0.05

    TRAIT_COUNTS: Dict[str, List[int]] = field(default_factory=lambda: {
        "full": [0, 1, 2, 4, 8, 16],
        "fast": [0, 1, 2, 4],
        "test": [0, 4],
    })

    # Item popularity buckets for the MAE breakdown, as (first, last) rating counts
    POPULARITY_BUCKETS: List[Tuple[int, int]] = field(default_factory=lambda: [(0, 0), (1, 1), (2, 7), (8, 2 ** 31 - 1)])


@dataclass
class AsthmaConfig:
    """Chapter 6 allergen and clinical trial parameters"""

    TESTS: Tuple[str, ...] = ("Skin", "IgE")
    ALLERGENS: Tuple[str, ...] = ("Mite", "Cat", "Dog", "Pollen", "Mould", "Milk", "Egg", "Peanut")
    YEARS: Tuple[str, ...] = ("1", "3", "5", "8")
    REMOVED_ALLERGENS: Tuple[str, ...] = ("Mould", "Peanut")

    # (P(positive | sensitized), P(positive | not sensitized))
    SKIN_TEST_PROBABILITIES: Tuple[float, float] = (0.647, 0.001)
    IGE_TEST_PROBABILITIES: Tuple[float, float] = (0.894, 0.015)

    CLASS_COUNTS: List[int] = field(default_factory=lambda: [2, 3, 4, 5, 6])
    SVI_STEPS: int = 300
    LEARNING_RATE: float = 0.05
    SYNTHESIS_SEED: int = 2
    INFERENCE_SEED: int = 1

    TRIAL_SIZES: List[int] = field(default_factory=lambda: [20, 60, 100])
    TRIAL_RECOVERY: Tuple[float, float] = (0.4, 0.65)
    NUTS_SAMPLES: int = 500
    NUTS_WARMUP: int = 200
    NUTS_CHAINS: int = 2


@dataclass
class CrowdConfig:
    """Chapter 7 experiment parameters"""

    SEED: int = 12347
    FRACTION_GOLD_FOR_TRAINING: float = 0.3
    NUMBER_OF_TRAINING_TWEETS: int = 10000
    NUM_DATA_SIZES: int = 10
    COMMUNITY_COUNTS: List[int] = field(default_factory=lambda: [1, 2, 3])
    MAXIMUM_NUMBER_WORKERS: int = 20
    VOCABULARY_THRESHOLD: int = 10

    LABELS: Dict[int, str] = field(default_factory=lambda: {0: "Negative", 1: "Neutral", 2: "Positive", 3: "Unrelated"})

    ABILITY_PRIOR: Tuple[float, float] = (2.0, 1.0)
    CPT_DIAGONAL_PRIOR: float = 60.0
    CPT_OFF_DIAGONAL_PRIOR: float = 10.0
    WORD_PRIOR: float = 10.0

    MAX_ITERATIONS: int = 35
    CONVERGENCE_CHECK: int = 3
    CONVERGENCE_TOLERANCE: float = 1e-5
    LOG_PROB_FLOOR: float = 0.001

    MODEL_TYPES: Tuple[str, ...] = ("MajorityVote", "Honest", "Biased", "Community", "CommunityWords")


# Global instances
MURDER_CONFIG = MurderMysteryConfig()
SKILLS_CONFIG = SkillsConfig()
TRUESKILL_CONFIG = TrueSkillConfig()
INBOX_CONFIG = InboxConfig()
RECOMMENDER_CONFIG = RecommenderConfig()
ASTHMA_CONFIG = AsthmaConfig()
CROWD_CONFIG = CrowdConfig()
