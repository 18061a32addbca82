"""
JSON view of peaks for display.

Peaks are grouped by the continuum they share, so a multi-peak ROI shows up
once with all of its peaks inside it.
"""

import json
import math
from typing import Dict, List, Sequence

from peakroi.continuum import Continuum, ContinuumType
from peakroi.peak import Peak, CoefficientType, SKEW_COEFFICIENTS


def sanitize_for_json(obj):
    """Recursively sanitize object for JSON serialization."""
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    elif isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [sanitize_for_json(i) for i in obj]
    elif hasattr(obj, 'tolist'):  # Numpy arrays and scalars
        return sanitize_for_json(obj.tolist())
    return obj


def continuum_to_dict(continuum: Continuum) -> Dict:
    result = {
        'type': continuum.type.value,
        'lowerEnergy': continuum.lower_energy,
        'upperEnergy': continuum.upper_energy,
    }

    if continuum.is_polynomial():
        result['referenceEnergy'] = continuum.reference_energy
        result['coefficients'] = continuum.parameters
        result['uncertainties'] = continuum.uncertainties
        result['fitForCoefficient'] = continuum.fit_for_parameter
    elif continuum.type == ContinuumType.EXTERNAL and continuum.external_continuum is not None:
        external = continuum.external_continuum
        result['energies'] = external.lower_energies
        result['counts'] = external.counts

    return result


def peak_to_dict(peak: Peak) -> Dict:
    result = {
        'type': peak.type.value,
        'skewType': peak.skew_type.value,
        'userLabel': peak.user_label,
        'useForCalibration': peak.use_for_calibration,
        'useForShieldingSourceFit': peak.use_for_shielding_source_fit,
    }

    coefs = (CoefficientType.MEAN, CoefficientType.SIGMA, CoefficientType.GAUSS_AMPLITUDE)
    coefs += SKEW_COEFFICIENTS[peak.skew_type] + (CoefficientType.CHI2_DOF,)
    for t in coefs:
        result[t.value] = [peak.coefficient(t), peak.uncertainty(t), peak.fit_for(t)]

    if peak.gaus_peak():
        result['area'] = peak.peak_area()
        result['areaUncert'] = peak.peak_area_uncert()

    if peak.nuclide:
        result['nuclide'] = peak.nuclide
        result['nuclideEnergy'] = peak.transition_energy
        result['sourceGammaType'] = peak.source_gamma_type.value
    elif peak.xray_element:
        result['xray'] = peak.xray_element
        result['xrayEnergy'] = peak.xray_energy
    elif peak.reaction:
        result['reaction'] = peak.reaction
        result['reactionEnergy'] = peak.reaction_energy
        result['sourceGammaType'] = peak.source_gamma_type.value

    return result


def peaks_by_continuum(peaks: Sequence[Peak]) -> List[List[Peak]]:
    """Peaks grouped by shared continuum, ordered by the lowest mean in each group."""
    groups: List[List[Peak]] = []
    for peak in sorted(peaks, key=Peak.sort_key):
        for group in groups:
            if group[0].shares_continuum_with(peak):
                group.append(peak)
                break
        else:
            groups.append([peak])
    return groups


def peak_json(peaks: Sequence[Peak]) -> str:
    """
    JSON string describing peaks and their continua.

    One object per shared continuum, each holding its peaks. Coefficients
    are written as [value, uncertainty, fitFor]; NaN and infinities become
    null.
    """
    rois = []
    for group in peaks_by_continuum(peaks):
        roi = continuum_to_dict(group[0].continuum)
        roi['peaks'] = [peak_to_dict(p) for p in group]
        rois.append(roi)

    return json.dumps(sanitize_for_json(rois))
