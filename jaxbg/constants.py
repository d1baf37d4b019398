"""Physical and numerical constants for jaxbg.

All background quantities are computed in units where H0 = 1 and c = 1:
H(z) in units of H0, distances in units of the Hubble distance c/H0.
Multiply by ``hubble_distance_Mpc_h`` to obtain distances in Mpc/h.
"""

# --- Fundamental constants (SI) ---
c_SI = 2.99792458e8
"""Speed of light in m/s."""

c_km_s = c_SI / 1e3
"""Speed of light in km/s."""

# --- Derived constants ---
hubble_distance_Mpc_h = c_km_s / 100.0
"""Hubble distance c/H0 in Mpc/h, i.e. c / (100 km/s/Mpc) = 2997.92458."""

# --- Default grids ---
eos_z_max_default = 100.0
"""Upper redshift of the dense grid on which w(z) and its integrals are tabulated."""

eos_n_points_default = 16385
"""Number of points of the dense tabulation grid (2^14 + 1)."""

bg_z_max_default = 15.0
"""Upper redshift of the output background bins."""

G_z_epsilon_default = 1e-10
"""Redshift below which the relativistic correction terms are set to zero."""
