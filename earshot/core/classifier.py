"""
YAMNet classifier session for Earshot.

Wraps a TensorFlow Lite audio classification model (by default the
YAMNet task model, 521 AudioSet classes, 16 kHz mono input of 15600
samples) behind a small interface: the audio format it needs, factories
for a matching buffer and capture handle, and classify().
"""

import csv
import io
import logging
import threading
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import numpy as np

from earshot.core.buffer import RollingAudioBuffer
from earshot.core.capture import AudioCapture, DeviceSpec
from earshot.core.models import AudioFormat, Categories, Category, Classifications
from earshot.utils.errors import ClassificationError, ModelLoadError

DEFAULT_SAMPLE_RATE = 16000


def _read_label_lines(text: str) -> List[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def parse_labels(text: str, filename: str = "") -> List[str]:
    """
    Parse a label file.

    Accepts one label per line, or a YAMNet-style class map CSV with an
    ``index,mid,display_name`` header.

    Args:
        text: File contents
        filename: Used to detect the CSV format by extension

    Returns:
        Labels in class-index order
    """
    if filename.lower().endswith(".csv"):
        reader = csv.DictReader(io.StringIO(text))
        if reader.fieldnames and "display_name" in reader.fieldnames:
            return [row["display_name"] for row in reader]
        # No header: last column holds the display name
        return [row[-1] for row in csv.reader(io.StringIO(text)) if row]
    return _read_label_lines(text)


def load_embedded_labels(model_path: Path) -> Dict[str, List[str]]:
    """
    Read label files packed into a TFLite model's metadata.

    Models with metadata carry their associated files as a zip archive
    appended to the flatbuffer.

    Args:
        model_path: Path to the .tflite file

    Returns:
        Mapping of archive member name to its labels (empty if none)
    """
    if not zipfile.is_zipfile(model_path):
        return {}

    labels: Dict[str, List[str]] = {}
    with zipfile.ZipFile(model_path) as archive:
        for name in archive.namelist():
            if not name.lower().endswith((".txt", ".csv")):
                continue
            text = archive.read(name).decode("utf-8", errors="replace")
            labels[name] = parse_labels(text, name)
    return labels


def load_labels_file(labels_path: Path) -> List[str]:
    """
    Load labels from a sidecar file.

    Raises:
        ModelLoadError: If the file cannot be read
    """
    try:
        text = labels_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ModelLoadError(
            f"Could not read labels file {labels_path}: {e}",
            model_path=str(labels_path),
        ) from e
    return parse_labels(text, labels_path.name)


class AudioClassifier:
    """
    A loaded audio classification model.

    Instances are created by create_from_file(). Tests construct one
    directly around any object with the tf.lite.Interpreter methods
    used here.
    """

    def __init__(
        self,
        interpreter: Any,
        labels: Optional[List[str]] = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        model_name: str = "yamnet",
    ):
        """
        Args:
            interpreter: Interpreter with tensors already allocated
            labels: Class labels in index order
            sample_rate: Rate the model was trained on
            model_name: Name used in logs
        """
        self.model_name = model_name
        self.labels = list(labels or [])
        self.logger = logging.getLogger(f"classifier.{model_name}")

        self._interpreter = interpreter
        self._invoke_lock = threading.Lock()
        self._input = interpreter.get_input_details()[0]
        self._outputs = interpreter.get_output_details()

        shape = [int(dim) for dim in self._input["shape"]]
        if len(shape) == 3:
            channels = shape[-1]
            frames = shape[-2]
        else:
            channels = 1
            frames = int(np.prod(shape))
        if frames < 1:
            raise ModelLoadError(
                f"Model input has no samples (shape {shape})", model_path=model_name
            )

        self._input_shape = shape
        self._required_format = AudioFormat(channels=channels, sample_rate=sample_rate)
        self._buffer_size = frames

    @classmethod
    def create_from_file(
        cls,
        model_path: Union[str, Path],
        labels_path: Optional[Union[str, Path]] = None,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        num_threads: Optional[int] = None,
    ) -> "AudioClassifier":
        """
        Load a bundled TFLite model.

        Args:
            model_path: Path to the .tflite file
            labels_path: Optional sidecar labels (.txt or class map .csv),
                         used when the model carries no usable labels
            sample_rate: Rate the model expects audio in
            num_threads: Interpreter threads (None for the runtime default)

        Returns:
            AudioClassifier ready to classify

        Raises:
            ModelLoadError: If the model is missing or malformed
        """
        path = Path(model_path)
        logger = logging.getLogger("classifier")

        if not path.is_file():
            raise ModelLoadError(f"Model file not found: {path}", model_path=str(path))

        try:
            import tensorflow as tf

            logger.info(f"Loading model from {path}...")
            interpreter = tf.lite.Interpreter(
                model_path=str(path), num_threads=num_threads
            )
            interpreter.allocate_tensors()
        except ImportError as e:
            raise ModelLoadError(
                f"TensorFlow is not installed: {e}", model_path=str(path)
            ) from e
        except (ValueError, RuntimeError) as e:
            raise ModelLoadError(
                f"Failed to load model {path.name}: {e}", model_path=str(path)
            ) from e

        classifier = cls(interpreter, sample_rate=sample_rate, model_name=path.stem)
        classifier.labels = classifier._pick_labels(path, labels_path)
        logger.info(
            f"Model loaded: {classifier.required_format.describe()}, "
            f"{classifier.required_input_buffer_size} samples, {len(classifier.labels)} labels"
        )
        return classifier

    @property
    def required_format(self) -> AudioFormat:
        return self._required_format

    @property
    def required_input_buffer_size(self) -> int:
        """Frames (samples per channel) in one model input window."""
        return self._buffer_size

    @property
    def num_classes(self) -> int:
        """Class count of the first output head."""
        return int(self._outputs[0]["shape"][-1])

    def create_input_buffer(self) -> RollingAudioBuffer:
        """Create a rolling buffer sized and shaped for this model."""
        return RollingAudioBuffer(self._required_format, self._buffer_size)

    def create_audio_capture(
        self, device: DeviceSpec = None, resample: bool = True
    ) -> AudioCapture:
        """Create a capture handle that records in this model's format."""
        return AudioCapture(self._required_format, device=device, resample=resample)

    def classify(self, buffer: RollingAudioBuffer) -> List[Classifications]:
        """
        Run the model on the current buffer window.

        Args:
            buffer: Buffer created by create_input_buffer()

        Returns:
            One Classifications per output head, categories in class order

        Raises:
            ClassificationError: If inference fails
        """
        if buffer.capacity != self._buffer_size:
            raise ClassificationError(
                f"Buffer holds {buffer.capacity} frames, model needs {self._buffer_size}",
                stage="input",
            )

        try:
            samples = buffer.as_model_input().reshape(self._input_shape)
            with self._invoke_lock:
                self._interpreter.set_tensor(self._input["index"], self._quantize(samples))
                self._interpreter.invoke()
                raw_outputs = [
                    self._interpreter.get_tensor(detail["index"]) for detail in self._outputs
                ]
        except ClassificationError:
            raise
        except Exception as e:
            self.logger.error(f"Inference failed: {e}")
            raise ClassificationError(
                f"{self.model_name} inference failed: {e}",
                stage="inference",
                original_error=e,
            ) from e

        return [
            self._to_classifications(head_index, detail, raw)
            for head_index, (detail, raw) in enumerate(zip(self._outputs, raw_outputs))
        ]

    def close(self) -> None:
        """Release the interpreter."""
        with self._invoke_lock:
            self._interpreter = None
        self.logger.debug("Classifier closed")

    def _quantize(self, samples: np.ndarray) -> np.ndarray:
        dtype = np.dtype(self._input["dtype"])
        if not np.issubdtype(dtype, np.integer):
            return samples.astype(dtype, copy=False)

        scale, zero_point = self._input.get("quantization", (0.0, 0))
        if not scale:
            info = np.iinfo(dtype)
            return np.clip(samples * info.max, info.min, info.max).astype(dtype)
        info = np.iinfo(dtype)
        quantized = np.round(samples / scale + zero_point)
        return np.clip(quantized, info.min, info.max).astype(dtype)

    def _to_classifications(
        self, head_index: int, detail: Dict[str, Any], raw: np.ndarray
    ) -> Classifications:
        scores = np.asarray(raw)
        scale, zero_point = detail.get("quantization", (0.0, 0))
        if np.issubdtype(scores.dtype, np.integer) and scale:
            scores = (scores.astype(np.float32) - zero_point) * scale
        scores = scores.astype(np.float32, copy=False)

        # [frames, classes] outputs are averaged over frames
        if scores.ndim > 1:
            scores = scores.reshape(-1, scores.shape[-1]).mean(axis=0)

        categories: Categories = [
            Category(label=self._label_for(i), score=float(score), index=i)
            for i, score in enumerate(scores)
        ]
        return Classifications(
            head_index=head_index,
            categories=categories,
            head_name=detail.get("name"),
        )

    def _label_for(self, index: int) -> str:
        if 0 <= index < len(self.labels):
            return self.labels[index]
        return f"Class_{index}"

    def _pick_labels(self, model_path: Path, labels_path: Optional[Union[str, Path]]) -> List[str]:
        """Prefer embedded labels matching the head size, then the sidecar file."""
        classes = self.num_classes

        try:
            embedded = load_embedded_labels(model_path)
        except (zipfile.BadZipFile, OSError) as e:
            self.logger.warning(f"Could not read model metadata: {e}")
            embedded = {}

        for name, labels in embedded.items():
            if len(labels) == classes:
                self.logger.debug(f"Using embedded labels from {name}")
                return labels

        if labels_path:
            labels = load_labels_file(Path(labels_path))
            if len(labels) != classes:
                self.logger.warning(
                    f"Labels file has {len(labels)} entries, model has {classes} classes"
                )
            return labels

        self.logger.warning("Model has no labels, using class indices")
        return []


def create_classifier(config: Dict[str, Any]) -> AudioClassifier:
    """
    Factory function to load the classifier described by the configuration.

    Args:
        config: Full configuration dictionary (see load_config())

    Returns:
        AudioClassifier: Loaded classifier

    Raises:
        ModelLoadError: If the model cannot be loaded
    """
    from earshot.utils.config import resolve_path

    model_config = config.get("model", {})
    return AudioClassifier.create_from_file(
        resolve_path(config, model_config.get("path")) or Path(""),
        labels_path=resolve_path(config, model_config.get("labels_path")),
        sample_rate=model_config.get("sample_rate", DEFAULT_SAMPLE_RATE),
        num_threads=model_config.get("num_threads"),
    )
