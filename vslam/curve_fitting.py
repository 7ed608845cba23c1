"""Fitting ``y = exp(a*x^2 + b*x + c)`` by nonlinear least squares."""

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass, field

import numpy as np

log = logging.getLogger(__name__)

TRUE_PARAMS = (1.0, 2.0, 1.0)
INITIAL_PARAMS = (2.0, -1.0, 5.0)


@dataclass(frozen=True)
class FitResult:
    """Outcome of a fit.

    ``cost`` is the sum of squared residuals at ``params``; ``history`` holds
    the cost before each accepted step.
    """

    params: np.ndarray
    cost: float
    iterations: int
    history: tuple = field(default=())


def generate_data(a=1.0, b=2.0, c=1.0, n=100, sigma=1.0, rng=None):
    """Sample ``n`` points at ``x = i / 100`` with Gaussian noise.

    The noise standard deviation is ``sigma * sigma``.
    """
    if n < 0:
        raise ValueError("n must not be negative")
    generator = np.random.default_rng(rng)
    x = np.arange(n) / 100.0
    noise = generator.normal(0.0, sigma * sigma, size=n)
    return x, model((a, b, c), x) + noise


def _params(params):
    p = np.asarray(params, dtype=float)
    if p.shape != (3,):
        raise ValueError(f"params must have three entries, got shape {p.shape}")
    return p


def _data(x, y):
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.ndim != 1 or x.shape != y.shape:
        raise ValueError("x and y must be one-dimensional and of equal length")
    if x.size == 0:
        raise ValueError("no data to fit")
    return x, y


def model(params, x):
    """Evaluate ``exp(a*x^2 + b*x + c)``."""
    a, b, c = _params(params)
    x = np.asarray(x, dtype=float)
    return np.exp(a * x * x + b * x + c)


def residuals(params, x, y):
    """Errors ``y - model(params, x)``."""
    return np.asarray(y, dtype=float) - model(params, x)


def jacobian(params, x):
    """Derivatives of the residuals by ``(a, b, c)``, one row per point."""
    x = np.asarray(x, dtype=float)
    f = model(params, x)
    return np.column_stack((-x * x * f, -x * f, -f))


def _check_sigma(sigma):
    if sigma <= 0:
        raise ValueError("sigma must be positive")
    return 1.0 / (sigma * sigma)


def _normal_equations(params, x, y, weight):
    e = residuals(params, x, y)
    j = jacobian(params, x)
    return weight * j.T @ j, -weight * j.T @ e, float(e @ e)


def _final(params, x, y, iterations, history):
    e = residuals(params, x, y)
    return FitResult(params, float(e @ e), iterations, tuple(history))


def gauss_newton(x, y, initial=INITIAL_PARAMS, iterations=100, sigma=1.0):
    """Gauss-Newton iterations; stops when the cost no longer decreases."""
    x, y = _data(x, y)
    weight = _check_sigma(sigma)
    params = _params(initial).copy()
    history = []
    last_cost = 0.0
    done = 0
    with np.errstate(over="ignore", invalid="ignore"):
        for iteration in range(iterations):
            h, b, cost = _normal_equations(params, x, y, weight)
            try:
                dx = np.linalg.solve(h, b)
            except np.linalg.LinAlgError:
                dx = np.full(3, np.nan)
            if np.isnan(dx).any():
                log.info("result is nan")
                break
            if iteration > 0 and cost >= last_cost:
                log.info("cost: %g >= last cost: %g, break.", cost, last_cost)
                break
            params = params + dx
            last_cost = cost
            history.append(cost)
            done += 1
            log.debug("total cost: %g, update: %s, estimated params: %s", cost, dx, params)
    return _final(params, x, y, done, history)


def levenberg_marquardt(x, y, initial=INITIAL_PARAMS, iterations=50, sigma=1.0):
    """Levenberg-Marquardt iterations with diagonal damping."""
    x, y = _data(x, y)
    weight = _check_sigma(sigma)
    params = _params(initial).copy()
    history = []
    damping = 1e-3
    done = 0
    with np.errstate(over="ignore", invalid="ignore"):
        h, b, cost = _normal_equations(params, x, y, weight)
        for _ in range(iterations):
            done += 1
            if not np.all(np.isfinite(b)) or np.max(np.abs(b)) < 1e-15:
                break
            damped = h + damping * np.diag(np.diag(h))
            try:
                dx = np.linalg.solve(damped, b)
            except np.linalg.LinAlgError:
                damping *= 10.0
                continue
            candidate = params + dx
            e = residuals(candidate, x, y)
            new_cost = float(e @ e)
            if np.isfinite(new_cost) and new_cost < cost:
                history.append(cost)
                params = candidate
                log.debug("cost: %g, damping: %g, params: %s", new_cost, damping, params)
                h, b, cost = _normal_equations(params, x, y, weight)
                damping = max(damping / 10.0, 1e-15)
                if np.linalg.norm(dx) <= 1e-12 * (np.linalg.norm(params) + 1e-12):
                    break
            else:
                damping *= 10.0
                if damping > 1e32:
                    break
    return _final(params, x, y, done, history)


_METHODS = {"gauss-newton": gauss_newton, "levenberg-marquardt": levenberg_marquardt}


def main(argv=None):
    """Generate noisy samples of the curve and fit them."""
    parser = argparse.ArgumentParser(description=main.__doc__)
    parser.add_argument("--method", choices=list(_METHODS), default="gauss-newton")
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--iterations", type=int, default=None)
    args = parser.parse_args(argv)

    x, y = generate_data(*TRUE_PARAMS, n=100, sigma=1.0, rng=args.seed)
    fit = _METHODS[args.method]
    kwargs = {} if args.iterations is None else {"iterations": args.iterations}
    start = time.perf_counter()
    result = fit(x, y, INITIAL_PARAMS, **kwargs)
    elapsed = time.perf_counter() - start
    for step, cost in enumerate(result.history):
        print(f"iteration {step}: cost {cost:g}")
    print(f"solve time cost = {elapsed:f} seconds.")
    a, b, c = result.params
    print(f"estimated a,b,c = {a:g}, {b:g}, {c:g}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())