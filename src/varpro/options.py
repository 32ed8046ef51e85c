"""Solver options, constraint options, and their loading/validation.

Options are plain frozen dataclasses populated once before a run starts.
They can also be built from a mapping (e.g. parsed from YAML), in which
case missing keys are filled from a defaults mapping and a key missing from
both is a hard error.

YAML layout accepted by ``load_options``::

    options:
      maxiter: 200
      tol: 1.0e-8
    constraints:          # optional
      ub: [0, 0, 0, .inf, .inf, .inf]
      real: false
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

import numpy as np
import yaml

from varpro.status import ConfigError, MissingFieldError


@dataclass(frozen=True)
class VarProOptions:
    """Options for the Levenberg-Marquardt outer loop.

    Attributes:
        lambda0: Initial damping parameter
        maxlam: Maximum number of damping escalations per iteration
        lamup: Factor applied to lambda when a step is rejected
        lamdown: Factor lambda is divided by when trying a smaller damping
        ifmarq: Scale damping per parameter by the Jacobian column norms
        maxiter: Iteration cap
        tol: Convergence threshold on the relative residual
        eps_stall: Stall threshold on the relative error decrease
        iffulljac: Use the full Golub-Pereyra Jacobian instead of
            Kaufman's approximation
        ifprint: Print progress and termination messages
        ptf: Print every ``ptf`` iterations when ``ifprint`` is set
    """

    lambda0: float = 1.0
    maxlam: int = 52
    lamup: float = 2.0
    lamdown: float = 2.0
    ifmarq: bool = True
    maxiter: int = 30
    tol: float = 1e-6
    eps_stall: float = 1e-12
    iffulljac: bool = True
    ifprint: bool = False
    ptf: int = 1

    def __post_init__(self):
        _validate_options(self)

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    def replace(self, **changes) -> VarProOptions:
        """Return a copy with the given fields changed."""
        return dataclasses.replace(self, **changes)


def _validate_options(opts: VarProOptions) -> None:
    """Raise ConfigError if any option value is out of range."""
    if not opts.lambda0 > 0:
        raise ConfigError(f"lambda0 must be positive, got {opts.lambda0}")
    if not opts.lamup > 1:
        raise ConfigError(f"lamup must be greater than 1, got {opts.lamup}")
    if not opts.lamdown > 1:
        raise ConfigError(f"lamdown must be greater than 1, got {opts.lamdown}")
    if opts.maxlam < 0:
        raise ConfigError(f"maxlam must be non-negative, got {opts.maxlam}")
    if opts.maxiter < 1:
        raise ConfigError(f"maxiter must be at least 1, got {opts.maxiter}")
    if opts.tol < 0:
        raise ConfigError(f"tol must be non-negative, got {opts.tol}")
    if opts.eps_stall < 0:
        raise ConfigError(f"eps_stall must be non-negative, got {opts.eps_stall}")
    if opts.ptf < 1:
        raise ConfigError(f"ptf must be at least 1, got {opts.ptf}")


@dataclass(frozen=True, eq=False)
class ConstraintOptions:
    """Linear constraints on the parameter vector.

    The bounds enforced on each step are::

        A @ alpha <= b
        Aeq @ alpha == beq
        lb <= alpha <= ub

    For complex parameters (``real=False``) every constraint acts on the
    stacked real vector ``[alpha.real, alpha.imag]`` of length ``2p``: the
    first ``p`` entries of ``lb``/``ub`` bound the real parts, the last
    ``p`` the imaginary parts.  Use ``-inf``/``inf`` for unbounded entries
    and leave unneeded constraints as None.

    Attributes:
        A: Inequality constraint matrix
        b: Inequality right-hand side
        Aeq: Equality constraint matrix
        beq: Equality right-hand side
        lb: Lower bounds
        ub: Upper bounds
        real: Parameters are real-valued
        lsq_linear_options: Keyword arguments for ``scipy.optimize.lsq_linear``,
            used when only bounds are given (e.g. ``{"method": "bvls"}``)
        slsqp_options: The ``options`` mapping for SLSQP, used when ``A`` or
            ``Aeq`` is given (e.g. ``{"ftol": 1e-10, "maxiter": 200}``)
    """

    A: np.ndarray | None = None
    b: np.ndarray | None = None
    Aeq: np.ndarray | None = None
    beq: np.ndarray | None = None
    lb: np.ndarray | None = None
    ub: np.ndarray | None = None
    real: bool = False
    lsq_linear_options: dict = field(default_factory=dict)
    slsqp_options: dict = field(default_factory=dict)

    def __post_init__(self):
        for name in ("A", "b", "Aeq", "beq", "lb", "ub"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, np.asarray(value, dtype=float))
        if (self.A is None) != (self.b is None):
            raise ConfigError("A and b must be given together")
        if (self.Aeq is None) != (self.beq is None):
            raise ConfigError("Aeq and beq must be given together")
        if self.A is not None and self.A.shape[0] != self.b.size:
            raise ConfigError(
                f"A has {self.A.shape[0]} rows but b has {self.b.size} entries"
            )
        if self.Aeq is not None and self.Aeq.shape[0] != self.beq.size:
            raise ConfigError(
                f"Aeq has {self.Aeq.shape[0]} rows but beq has {self.beq.size} entries"
            )

    @property
    def has_linear(self) -> bool:
        """True if any inequality or equality rows are present."""
        return self.A is not None or self.Aeq is not None

    def width(self, n_params: int) -> int:
        """Length of the vector the constraints act on."""
        return n_params if self.real else 2 * n_params

    def check_width(self, n_params: int) -> None:
        """Raise ConfigError if constraint sizes don't match the parameters."""
        width = self.width(n_params)
        for name in ("A", "Aeq"):
            mat = getattr(self, name)
            if mat is not None and (mat.ndim != 2 or mat.shape[1] != width):
                raise ConfigError(
                    f"{name} must have {width} columns, got shape {mat.shape}"
                )
        for name in ("lb", "ub"):
            vec = getattr(self, name)
            if vec is not None and vec.size != width:
                raise ConfigError(f"{name} must have {width} entries, got {vec.size}")


DEFAULT_OPTIONS = VarProOptions()


def _defaults_mapping(defaults: Union[VarProOptions, Mapping, None]) -> Mapping:
    if defaults is None:
        return DEFAULT_OPTIONS.to_dict()
    if isinstance(defaults, VarProOptions):
        return defaults.to_dict()
    return defaults


def resolve_options(
    opts: Union[VarProOptions, Mapping, None] = None,
    defaults: Union[VarProOptions, Mapping, None] = None,
) -> VarProOptions:
    """Build a validated VarProOptions.

    Args:
        opts: An options instance (returned as is), a mapping of option
            values, or None for the defaults
        defaults: Values used for keys missing from ``opts``.  Defaults to
            DEFAULT_OPTIONS.

    Returns:
        VarProOptions with every field populated

    Raises:
        ConfigError: If ``opts`` has unknown keys or invalid values
        MissingFieldError: If a field is in neither ``opts`` nor ``defaults``
    """
    if isinstance(opts, VarProOptions):
        return opts
    if opts is None:
        opts = {}
    if not isinstance(opts, Mapping):
        raise ConfigError(
            f"opts must be a VarProOptions or a mapping, got {type(opts).__name__}"
        )

    names = [f.name for f in dataclasses.fields(VarProOptions)]
    unknown = sorted(set(opts) - set(names))
    if unknown:
        raise ConfigError(f"Unknown option(s): {unknown}")

    fallback = _defaults_mapping(defaults)
    values: dict[str, Any] = {}
    for name in names:
        if name in opts:
            values[name] = opts[name]
        elif name in fallback:
            values[name] = fallback[name]
        else:
            raise MissingFieldError(f"missing required field {name!r}")
    return VarProOptions(**values)


def resolve_constraints(
    copts: Union[ConstraintOptions, Mapping, None],
) -> ConstraintOptions | None:
    """Build ConstraintOptions from a mapping; None means unconstrained."""
    if copts is None or isinstance(copts, ConstraintOptions):
        return copts
    if not isinstance(copts, Mapping):
        raise ConfigError(
            "constraints must be a ConstraintOptions or a mapping, "
            f"got {type(copts).__name__}"
        )
    names = {f.name for f in dataclasses.fields(ConstraintOptions)}
    unknown = sorted(set(copts) - names)
    if unknown:
        raise ConfigError(f"Unknown constraint option(s): {unknown}")
    return ConstraintOptions(**copts)


def load_options(
    path: str | Path,
) -> tuple[VarProOptions, ConstraintOptions | None]:
    """Load solver and constraint options from a YAML file.

    Args:
        path: Path to a YAML file with an ``options`` mapping and an
            optional ``constraints`` mapping.

    Returns:
        Tuple of (options, constraints or None)
    """
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{path} must contain a mapping at top level")
    unknown = sorted(set(data) - {"options", "constraints"})
    if unknown:
        raise ConfigError(f"Unknown section(s) in {path}: {unknown}")
    return (
        resolve_options(data.get("options")),
        resolve_constraints(data.get("constraints")),
    )
