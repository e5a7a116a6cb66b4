from typing import Dict, List, Optional, Sequence

import numpy as np


def simple_returns(prices: Sequence[float]) -> List[float]:
    """Period-over-period returns of a price series; non-positive prices are skipped."""
    clean = np.asarray([p for p in prices if p is not None and p > 0], dtype=float)
    if clean.size < 2:
        return []
    return list(clean[1:] / clean[:-1] - 1.0)


def mean_return(returns: Sequence[float]) -> Optional[float]:
    if len(returns) == 0:
        return None
    return float(np.mean(np.asarray(returns, dtype=float)))


def volatility(returns: Sequence[float]) -> Optional[float]:
    """Sample standard deviation of returns; None with fewer than 2 points."""
    if len(returns) < 2:
        return None
    return float(np.std(np.asarray(returns, dtype=float), ddof=1))


def annualize_return(mean: float, periods_per_year: int) -> float:
    return mean * periods_per_year


def annualize_volatility(sigma: float, periods_per_year: int) -> float:
    return sigma * float(np.sqrt(periods_per_year))


def correlation(a: Sequence[float], b: Sequence[float], default: float, min_overlap: int = 3) -> float:
    """
    Pearson correlation of the overlapping tails of two return series.
    Falls back to `default` when the overlap is too short or either side is flat.
    """
    n = min(len(a), len(b))
    if n < min_overlap:
        return default
    x = np.asarray(a[-n:], dtype=float)
    y = np.asarray(b[-n:], dtype=float)
    if np.std(x) == 0 or np.std(y) == 0:
        return default
    rho = float(np.corrcoef(x, y)[0, 1])
    if np.isnan(rho):
        return default
    return max(-1.0, min(1.0, rho))


def correlation_matrix(series: Dict[str, Sequence[float]], symbols: List[str], default: float) -> np.ndarray:
    n = len(symbols)
    matrix = np.eye(n)
    for i in range(n):
        for j in range(i + 1, n):
            rho = correlation(series.get(symbols[i], []), series.get(symbols[j], []), default)
            matrix[i, j] = matrix[j, i] = rho
    return matrix


def covariance_matrix(vols: Sequence[float], corr: np.ndarray) -> np.ndarray:
    """Sigma[i][j] = rho(i, j) * sigma_i * sigma_j; the diagonal is sigma_i ** 2."""
    sigma = np.asarray(vols, dtype=float)
    cov = corr * np.outer(sigma, sigma)
    np.fill_diagonal(cov, sigma ** 2)
    return cov


def normalize(weights: Sequence[float]) -> np.ndarray:
    """Scale non-negative weights to sum to 1; all-zero input becomes equal weights."""
    w = np.clip(np.asarray(weights, dtype=float), 0.0, None)
    total = w.sum()
    if w.size == 0:
        return w
    if total <= 0:
        return np.full(w.size, 1.0 / w.size)
    return w / total
