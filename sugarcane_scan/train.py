"""
Training Pipeline for the Sugarcane Leaf Validation Model
Fits a leaf / not-leaf classifier on 224x224 image tensors and saves it with joblib
"""

import os
import time
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import joblib
import numpy as np
from sklearn.ensemble import RandomForestClassifier
from sklearn.metrics import accuracy_score, classification_report
from sklearn.model_selection import train_test_split
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC
from tqdm import tqdm

from .errors import InputError
from .preprocessing import ImagePreprocessor

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.webp'}
LEAF_DIR = 'leaf'
NON_LEAF_DIR = 'non_leaf'


def build_model(model_type: str = 'random_forest', n_estimators: int = 200,
                random_state: int = 42) -> Pipeline:
    """Scaler + classifier pipeline exposing predict_proba"""
    if model_type == 'random_forest':
        classifier = RandomForestClassifier(
            n_estimators=n_estimators, random_state=random_state, class_weight='balanced'
        )
    elif model_type == 'svm':
        classifier = SVC(kernel='rbf', probability=True, random_state=random_state,
                         class_weight='balanced')
    else:
        raise ValueError("model_type must be 'random_forest' or 'svm'")

    return Pipeline([
        ('scaler', StandardScaler()),
        ('classifier', classifier),
    ])


def create_synthetic_training_data(n_leaf_samples: int = 100, n_non_leaf_samples: int = 100,
                                   seed: Optional[int] = None) -> Tuple[List[np.ndarray], List[np.ndarray]]:
    """
    Create synthetic training data for demonstration

    Leaf samples are elongated green blades on soil-coloured backgrounds;
    non-leaf samples are random noise with grey geometric shapes.

    Returns:
        Tuple of (leaf_images, non_leaf_images) as RGB arrays
    """
    rng = np.random.default_rng(seed)
    leaf_images = []
    non_leaf_images = []

    for _ in range(n_leaf_samples):
        img = np.full((320, 160, 3), (110, 80, 50), dtype=np.uint8)
        axes = (int(rng.integers(30, 60)), int(rng.integers(120, 150)))
        angle = int(rng.integers(-15, 15))
        cv2.ellipse(img, (80, 160), axes, angle, 0, 360, (40, 150, 40), -1)
        noise = rng.integers(0, 40, img.shape, dtype=np.uint8)
        leaf_images.append(cv2.add(img, noise))

    for _ in range(n_non_leaf_samples):
        img = rng.integers(0, 255, (224, 224, 3), dtype=np.uint8)
        shade = (int(rng.integers(0, 255)),) * 3
        if rng.random() > 0.5:
            cv2.rectangle(img, (50, 50), (170, 170), shade, -1)
        else:
            cv2.circle(img, (112, 112), int(rng.integers(30, 70)), shade, -1)
        non_leaf_images.append(img)

    return leaf_images, non_leaf_images


class LeafModelTrainer:
    """Complete training pipeline for the leaf validation model"""

    def __init__(self, model_type: str = 'random_forest', n_estimators: int = 200,
                 test_size: float = 0.2, random_state: int = 42,
                 preprocessor: Optional[ImagePreprocessor] = None):
        self.model_type = model_type
        self.n_estimators = n_estimators
        self.test_size = test_size
        self.random_state = random_state
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.model: Optional[Pipeline] = None

    def load_dataset(self, data_dir: str) -> Tuple[List[np.ndarray], List[np.ndarray]]:
        """
        Load images from directory structure

        Args:
            data_dir: Root directory. Expected structure:
                      data_dir/
                      ├── leaf/
                      └── non_leaf/
        """
        logger.info(f"Loading dataset from {data_dir}")
        leaf_images = self._load_folder(Path(data_dir) / LEAF_DIR)
        non_leaf_images = self._load_folder(Path(data_dir) / NON_LEAF_DIR)
        logger.info(f"Loaded {len(leaf_images)} leaf and {len(non_leaf_images)} non-leaf images")
        return leaf_images, non_leaf_images

    def _load_folder(self, folder: Path) -> List[np.ndarray]:
        if not folder.is_dir():
            raise InputError(f"Missing training folder: {folder}")

        images = []
        files = sorted(p for p in folder.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
        for path in tqdm(files, desc=f"Loading {folder.name}", leave=False):
            try:
                images.append(self.preprocessor.load_image(path))
            except InputError as e:
                logger.warning(f"Failed to load {path}: {e}")
        return images

    def to_features(self, images: List[np.ndarray]) -> np.ndarray:
        """Flattened model input tensors, one row per image"""
        rows = []
        for image in tqdm(images, desc="Preprocessing", leave=False):
            with self.preprocessor.tensor(image) as batch:
                rows.append(batch.reshape(-1).copy())
        return np.stack(rows)

    def train(self, leaf_images: List[np.ndarray], non_leaf_images: List[np.ndarray]) -> Dict:
        """
        Fit the leaf validation model

        Returns:
            Training results dictionary
        """
        if not leaf_images or not non_leaf_images:
            raise InputError("Training needs both leaf and non-leaf images")

        start_time = time.time()
        X = self.to_features(leaf_images + non_leaf_images)
        y = np.array([1] * len(leaf_images) + [0] * len(non_leaf_images))

        X_train, X_test, y_train, y_test = train_test_split(
            X, y, test_size=self.test_size, random_state=self.random_state, stratify=y
        )

        self.model = build_model(self.model_type, self.n_estimators, self.random_state)
        logger.info(f"Training {self.model_type} model on {len(X_train)} samples...")
        self.model.fit(X_train, y_train)

        y_pred = self.model.predict(X_test)
        accuracy = accuracy_score(y_test, y_pred)
        logger.info(f"Training completed. Accuracy: {accuracy:.3f}")

        return {
            'accuracy': float(accuracy),
            'classification_report': classification_report(
                y_test, y_pred, labels=[0, 1], target_names=['not_leaf', 'leaf'], zero_division=0
            ),
            'n_train': int(len(X_train)),
            'n_test': int(len(X_test)),
            'training_time': time.time() - start_time,
        }

    def save_model(self, save_path: str):
        """Save trained model"""
        if self.model is None:
            raise ValueError("Model not trained. Train model first.")
        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        joblib.dump(self.model, save_path)
        logger.info(f"Model saved to {save_path}")

    def run(self, data_dir: Optional[str], output_path: str,
            synthetic_samples: int = 0) -> Dict:
        """Load data (or synthesise it), train and save"""
        if data_dir:
            leaf_images, non_leaf_images = self.load_dataset(data_dir)
        else:
            logger.warning("No data directory given, creating synthetic data")
            leaf_images, non_leaf_images = create_synthetic_training_data(
                synthetic_samples or 100, synthetic_samples or 100, seed=self.random_state
            )

        results = self.train(leaf_images, non_leaf_images)
        self.save_model(output_path)
        results['model_path'] = output_path
        return results
