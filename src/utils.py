import numpy as np


def finite_values(values):
    x = np.asarray(values, dtype=float).ravel()
    return x[np.isfinite(x)]


def otsu_threshold(values, nbins=256):
    """
    Threshold that maximises the between-class variance of a 1D distribution.

    Returns the upper edge of the lower class, so `values > threshold` selects
    the upper class.
    """
    x = finite_values(values)
    if len(x) == 0:
        raise ValueError("No finite values to threshold")
    if np.all(x == x[0]):
        return float(x[0])
    hist, bin_edges = np.histogram(x, bins=nbins)
    bin_centers = 0.5*(bin_edges[:-1] + bin_edges[1:])
    weight1 = np.cumsum(hist).astype(float)
    weight2 = weight1[-1] - weight1
    sum1 = np.cumsum(hist * bin_centers)
    mean1 = sum1 / np.maximum(weight1, 1)
    mean2 = (sum1[-1] - sum1) / np.maximum(weight2, 1)
    # Between-class variance:
    var_between = weight1[:-1] * weight2[:-1] * (mean1[:-1] - mean2[:-1])**2
    idx = np.nanargmax(var_between)
    return float(bin_edges[idx + 1])
