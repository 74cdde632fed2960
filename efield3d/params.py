from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from efield3d.errors import ConfigurationError


@dataclass(slots=True)
class RunParams:
    particle_count: int = 100  # per polarity
    reps: int = 100  # sweeps
    batch: int = 10  # sweeps between reports
    seed: int | None = None  # None: derived from the clock
    cutoff: float = 0.0
    coulomb: str = "si"  # si | normalized

    positive_file: str | None = None  # STL anode
    negative_file: str | None = None  # STL cathode
    geometry_file: str | None = None  # JSON/XML shapes
    stl_scale: float = 0.001  # STL units -> meters

    out_file: str | None = None
    tee: bool = False  # also log to the console when out_file is set

    scan_x0: float = 0.0  # mm
    scan_x1: float = 0.0
    scan_points: int = 0

    verbose: bool = False

    def clamp(self) -> "RunParams":
        self.particle_count = max(1, int(self.particle_count))
        self.reps = max(0, int(self.reps))
        self.batch = max(1, int(self.batch))
        if self.seed is not None:
            self.seed = int(self.seed) & 0xFFFFFFFF
        self.cutoff = max(0.0, float(self.cutoff))
        self.coulomb = str(self.coulomb or "si").strip().lower()
        if self.coulomb not in {"si", "normalized"}:
            self.coulomb = "si"
        self.stl_scale = float(self.stl_scale)
        if self.stl_scale <= 0.0:
            self.stl_scale = 0.001
        self.tee = bool(self.tee)
        self.scan_x0 = float(self.scan_x0)
        self.scan_x1 = float(self.scan_x1)
        self.scan_points = max(0, int(self.scan_points))
        self.verbose = bool(self.verbose)
        return self

    def validate(self) -> list[str]:
        warnings: list[str] = []

        if self.geometry_file and (self.positive_file or self.negative_file):
            warnings.append("positive_file/negative_file ignored when geometry_file is set.")
        if self.particle_count < 2:
            warnings.append("particle_count < 2: potential spread is undefined.")
        if self.tee and not self.out_file:
            warnings.append("tee has no effect without out_file.")
        if self.scan_points > 0 and not self.out_file:
            warnings.append("scan needs out_file; it is only written to the output file.")
        if self.scan_points > 0 and self.scan_x0 == self.scan_x1:
            warnings.append("scan_x0 equals scan_x1: scan covers a single point.")
        if self.cutoff > 0.0 and self.coulomb == "si":
            warnings.append("cutoff changes absolute potentials; capacitance is approximate.")
        if self.batch > self.reps > 0:
            warnings.append("batch larger than reps: only one report is produced.")

        return warnings

    @property
    def coulomb_constant(self) -> float:
        from efield3d.physics.potential import KE, KE_NORMALIZED

        return KE if self.coulomb == "si" else KE_NORMALIZED

    @classmethod
    def load(cls, path: str | Path) -> "RunParams":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid JSON in {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError("The parameter file must contain a JSON object.")
        # Older files used the command line switch names.
        for old, new in (("nReps", "reps"), ("n", "particle_count"), ("nParticles", "particle_count")):
            if old in data and new not in data:
                data[new] = data[old]
        filtered: dict[str, Any] = {k: v for k, v in data.items() if k in cls.__annotations__}
        try:
            return cls(**filtered).clamp()
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid value in {path}: {exc}") from exc

    def save(self, path: str | Path) -> None:
        Path(path).write_text(json.dumps(asdict(self), indent=2, ensure_ascii=False), encoding="utf-8")
