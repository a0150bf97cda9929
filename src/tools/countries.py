"""
Approximate country bounding boxes for search_tracks_by_location.

Values are (min_lat, max_lat, min_lon, max_lon); keys are lowercase.
"""

from typing import Optional

from src.measurements import BoundingBox

COUNTRY_BOXES = {
    "south africa": (-34.819, -22.126, 16.344, 32.895),
    "usa": (24.396, 49.384, -125.0, -66.934),
    "united states": (24.396, 49.384, -125.0, -66.934),
    "japan": (24.045, 45.523, 122.933, 145.817),
    "france": (42.332, 51.088, -5.142, 9.560),
    "germany": (47.270, 55.058, 5.866, 15.041),
    "uk": (49.909, 60.860, -8.649, 1.762),
    "united kingdom": (49.909, 60.860, -8.649, 1.762),
    "canada": (41.676, 83.110, -141.002, -52.636),
    "australia": (-43.634, -10.062, 113.093, 153.569),
    "brazil": (-33.750, 5.272, -73.985, -34.793),
    "india": (6.753, 35.504, 68.176, 97.402),
    "china": (18.153, 53.560, 73.660, 134.773),
    "russia": (41.185, 81.857, 19.638, 169.000),
    "mexico": (14.538, 32.718, -118.466, -86.710),
    "italy": (36.652, 47.092, 6.626, 18.520),
    "spain": (36.000, 43.791, -9.297, 4.327),
    "netherlands": (50.753, 53.554, 3.362, 7.227),
    "sweden": (55.336, 69.062, 11.118, 24.156),
    "norway": (57.977, 80.666, 4.650, 31.078),
    "finland": (59.808, 70.092, 20.644, 31.586),
    "poland": (49.002, 54.835, 14.122, 24.156),
    "ukraine": (44.386, 52.357, 22.137, 40.207),
    "turkey": (35.815, 42.107, 25.668, 44.833),
    "argentina": (-55.059, -21.781, -73.415, -53.637),
    "chile": (-55.611, -17.507, -80.783, -66.959),
    "new zealand": (-47.284, -34.389, 166.509, 178.517),
    "south korea": (33.190, 38.612, 124.609, 129.584),
    "thailand": (5.610, 20.463, 97.343, 105.636),
    "vietnam": (8.559, 23.392, 102.144, 109.464),
    "indonesia": (-11.006, 6.075, 95.009, 141.022),
    "philippines": (4.643, 21.121, 116.931, 126.601),
    "malaysia": (0.855, 7.363, 99.643, 119.267),
    "singapore": (1.296, 1.471, 103.638, 104.094),
    "egypt": (22.000, 31.667, 24.698, 36.898),
    "nigeria": (4.277, 13.892, 2.668, 14.680),
    "kenya": (-4.678, 5.017, 33.908, 41.899),
    "israel": (29.501, 33.340, 34.269, 35.875),
    "uae": (22.633, 26.083, 51.583, 56.381),
    "saudi arabia": (16.376, 32.158, 34.495, 55.666),
    "pakistan": (23.786, 37.097, 60.878, 77.840),
    "bangladesh": (20.743, 26.631, 88.028, 92.673),
    "nepal": (26.356, 30.433, 80.057, 88.199),
    "srilanka": (5.916, 9.831, 79.651, 81.880),
    "morocco": (27.661, 35.771, -13.168, -1.022),
    "portugal": (36.961, 42.154, -9.495, -6.189),
    "greece": (34.802, 41.748, 19.373, 28.247),
    "austria": (46.372, 49.017, 9.530, 17.160),
    "switzerland": (45.817, 47.808, 6.022, 10.492),
    "belgium": (49.496, 51.505, 2.545, 6.408),
    "denmark": (54.562, 57.748, 8.075, 12.690),
    "ireland": (51.451, 55.387, -10.478, -5.433),
    "czech republic": (48.551, 51.055, 12.090, 18.859),
    "romania": (43.627, 48.265, 20.261, 29.690),
    "hungary": (45.743, 48.585, 16.113, 22.906),
    "colombia": (-4.225, 13.387, -79.021, -67.026),
    "peru": (-18.349, -0.014, -81.326, -68.678),
    "venezuela": (0.626, 12.196, -73.354, -60.521),
    "ecuador": (-5.017, 1.439, -81.082, -75.185),
    "costa rica": (8.032, 11.216, -85.950, -82.556),
    "panama": (7.215, 9.637, -83.051, -77.174),
    "guatemala": (13.737, 17.815, -92.238, -88.226),
    "honduras": (13.204, 16.513, -89.353, -83.155),
    "nicaragua": (10.707, 15.025, -87.691, -82.769),
    "el salvador": (13.148, 14.445, -90.125, -87.691),
    "cuba": (19.828, 23.226, -84.958, -74.130),
    "jamaica": (17.703, 18.526, -78.366, -76.191),
    "dominican republic": (17.547, 19.930, -71.997, -68.320),
    "puerto rico": (17.926, 18.520, -67.242, -65.242),
    "trinidad": (10.033, 11.336, -61.921, -60.517),
    "uruguay": (-34.972, -30.086, -58.444, -53.075),
    "paraguay": (-27.607, -19.287, -62.645, -54.259),
    "bolivia": (-22.896, -9.679, -69.641, -57.458),
    "iceland": (63.395, 66.534, -24.546, -13.495),
    "luxembourg": (49.447, 50.182, 5.734, 6.528),
    "malta": (35.810, 36.085, 14.183, 14.578),
    "cyprus": (34.633, 35.701, 32.272, 34.595),
    "estonia": (57.516, 59.731, 21.836, 28.209),
    "latvia": (55.669, 58.085, 20.974, 28.241),
    "lithuania": (53.899, 56.446, 20.942, 26.835),
    "slovenia": (45.411, 46.877, 13.382, 16.583),
    "croatia": (42.434, 46.538, 13.493, 19.427),
    "serbia": (42.231, 46.181, 18.817, 23.007),
    "bosnia": (42.553, 45.239, 15.717, 19.621),
    "montenegro": (41.849, 43.541, 18.465, 20.358),
    "albania": (39.644, 42.661, 19.276, 21.057),
    "north macedonia": (40.861, 42.366, 20.463, 23.038),
    "bulgaria": (41.242, 44.217, 22.371, 28.612),
    "slovakia": (47.728, 49.603, 16.847, 22.570),
    "belarus": (51.256, 56.172, 23.176, 32.770),
    "moldova": (45.468, 48.490, 26.618, 30.129),
    "georgia": (41.053, 43.586, 40.010, 46.726),
    "armenia": (38.830, 41.301, 43.448, 46.654),
    "azerbaijan": (38.389, 41.906, 44.774, 50.369),
    "kazakhstan": (40.923, 55.451, 46.491, 87.315),
    "uzbekistan": (37.185, 45.575, 55.996, 73.132),
    "turkmenistan": (35.141, 42.795, 52.441, 66.684),
    "tajikistan": (36.672, 41.039, 67.386, 75.137),
    "kyrgyzstan": (39.172, 43.238, 69.275, 80.282),
    "mongolia": (41.567, 52.154, 87.749, 119.924),
    "afghanistan": (29.377, 38.483, 60.478, 74.879),
    "iran": (25.064, 39.777, 44.047, 63.317),
    "iraq": (29.069, 37.378, 38.795, 48.575),
    "syria": (32.311, 37.319, 35.727, 42.383),
    "jordan": (29.186, 33.367, 34.959, 39.301),
    "lebanon": (33.053, 34.691, 35.111, 36.626),
    "kuwait": (28.524, 30.095, 46.555, 48.431),
    "bahrain": (25.796, 26.295, 50.449, 50.669),
    "qatar": (24.482, 26.155, 50.756, 51.638),
    "oman": (16.646, 24.006, 51.881, 59.836),
    "yemen": (12.113, 18.999, 42.532, 54.530),
}


def country_box(name: str) -> Optional[BoundingBox]:
    """Case-insensitive lookup; None when the country is not in the table."""
    values = COUNTRY_BOXES.get(name.strip().lower())
    if values is None:
        return None
    return BoundingBox(*values)
