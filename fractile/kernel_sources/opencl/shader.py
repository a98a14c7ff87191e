"""
OpenCL full-frame program, assembled per (algorithm, precision) by template
substitution.

Every work item evaluates one pixel at the full iteration budget and writes
its colour. The arithmetic runs on float32 lanes: "single" is plain float,
"double-double" pairs two floats and "limb" stores base-1024 digits in floats
(every limb product and convolution sum stays below 2**24, so it is exact).
"""
from string import Template
from typing import Tuple

from fractile.kernel_sources.registry import register_kernel
from fractile.precision.limb import LIMB_COUNT
from fractile.utils.enums import Algorithm, LimbProfile, Precision

KERNEL_NAME = "render_frame"

_DD_FUNCS = r"""
#pragma OPENCL FP_CONTRACT OFF
inline float2 two_sum(float a, float b) {
    float s = a + b;
    float bb = s - a;
    return (float2)(s, (a - (s - bb)) + (b - bb));
}
inline float2 quick_two_sum(float a, float b) {
    float s = a + b;
    return (float2)(s, b - (s - a));
}
inline float2 split_f(float a) {
    float t = 4097.0f * a;
    float hi = t - (t - a);
    return (float2)(hi, a - hi);
}
inline float2 two_prod(float a, float b) {
    float p = a * b;
    float2 as = split_f(a);
    float2 bs = split_f(b);
    float e = ((as.x * bs.x - p) + as.x * bs.y + as.y * bs.x) + as.y * bs.y;
    return (float2)(p, e);
}
inline float2 dd_add(float2 a, float2 b) {
    float2 s = two_sum(a.x, b.x);
    float2 t = two_sum(a.y, b.y);
    s.y += t.x;
    s = quick_two_sum(s.x, s.y);
    s.y += t.y;
    return quick_two_sum(s.x, s.y);
}
inline float2 dd_sub(float2 a, float2 b) { return dd_add(a, (float2)(-b.x, -b.y)); }
inline float2 dd_mul(float2 a, float2 b) {
    float2 p = two_prod(a.x, b.x);
    p.y += a.x * b.y + a.y * b.x;
    return quick_two_sum(p.x, p.y);
}
inline float2 dd_mulf(float2 a, float b) {
    float2 p = two_prod(a.x, b);
    p.y += a.y * b;
    return quick_two_sum(p.x, p.y);
}
inline float2 dd_abs(float2 a) {
    return (a.x < 0.0f || (a.x == 0.0f && a.y < 0.0f)) ? (float2)(-a.x, -a.y) : a;
}
"""

_LIMB_FUNCS = Template(r"""
#pragma OPENCL FP_CONTRACT OFF
#define LIMB_COUNT $count
#define LIMB_FRACTIONAL $fractional
#define LIMB_BASE 1024.0f
#define LIMB_HALF 512.0f
#define LIMB_SCALE $scale

inline void limb_normalize(float* a) {
    for (int i = 0; i < LIMB_COUNT; ++i) {
        float carry = floor((a[i] + LIMB_HALF) / LIMB_BASE);
        a[i] -= carry * LIMB_BASE;
        if (i + 1 < LIMB_COUNT) a[i + 1] += carry;
    }
}
inline void limb_from_float(float v, float* out) {
    float scaled = v * LIMB_SCALE;
    float sign = scaled < 0.0f ? -1.0f : 1.0f;
    float mag = floor(fabs(scaled) + 0.5f);
    for (int i = 0; i < LIMB_COUNT; ++i) {
        float digit = fmod(mag, LIMB_BASE);
        out[i] = sign * digit;
        mag = floor(mag / LIMB_BASE);
    }
    limb_normalize(out);
}
inline float limb_to_float(const float* a) {
    float acc = 0.0f;
    for (int i = LIMB_COUNT - 1; i >= 0; --i) acc = acc * LIMB_BASE + a[i];
    return acc / LIMB_SCALE;
}
inline int limb_is_negative(const float* a) {
    for (int i = LIMB_COUNT - 1; i >= 0; --i) {
        if (a[i] != 0.0f) return a[i] < 0.0f;
    }
    return 0;
}
inline void limb_add(const float* a, const float* b, float* out) {
    for (int i = 0; i < LIMB_COUNT; ++i) out[i] = a[i] + b[i];
    limb_normalize(out);
}
inline void limb_sub(const float* a, const float* b, float* out) {
    for (int i = 0; i < LIMB_COUNT; ++i) out[i] = a[i] - b[i];
    limb_normalize(out);
}
inline void limb_mul_scalar(const float* a, float s, float* out) {
    for (int i = 0; i < LIMB_COUNT; ++i) out[i] = a[i] * s;
    limb_normalize(out);
}
inline void limb_abs(float* a) {
    if (limb_is_negative(a)) {
        for (int i = 0; i < LIMB_COUNT; ++i) a[i] = -a[i];
    }
}
inline void limb_mul(const float* a, const float* b, float* out) {
    float guard = 0.0f;
    for (int t = max(0, LIMB_FRACTIONAL - 2); t < LIMB_FRACTIONAL; ++t) {
        float acc = 0.0f;
        for (int i = 0; i <= t; ++i) acc += a[i] * b[t - i];
        guard = guard / LIMB_BASE + acc;
    }
    float carry = floor(guard / LIMB_BASE + 0.5f);
    for (int k = 0; k < LIMB_COUNT; ++k) {
        int t = LIMB_FRACTIONAL + k;
        int lo = max(0, t - (LIMB_COUNT - 1));
        int hi = min(LIMB_COUNT - 1, t);
        float acc = 0.0f;
        for (int i = lo; i <= hi; ++i) acc += a[i] * b[t - i];
        out[k] = acc;
    }
    out[0] += carry;
    limb_normalize(out);
}
""")

_FRAME = Template(r"""
$funcs

__kernel void render_frame(
    const float x0_hi, const float x0_lo, const float y0_hi, const float y0_lo,
    const float x_scale, const float y_scale,
    __global const float* x0_limbs, __global const float* y0_limbs,
    const int width, const int height, const int max_iter, const int smooth,
    const float jr, const float ji,
    const int colour_mode, const float pscale, const float dither,
    __global const float* palette, const int palette_size,
    __global uchar* out)
{
    const int px = get_global_id(0);
    const int py = get_global_id(1);
    if (px >= width || py >= height) return;
    const int o = 3 * (py * width + px);

$seed
$init
    int n = 0;
    float mag;
$magnitude
    while (mag <= 4.0f && n < max_iter) {
$step
        ++n;
$magnitude
    }

    if (n >= max_iter) {
        out[o] = 0; out[o + 1] = 0; out[o + 2] = 0;
        return;
    }

    float value = (float)n;
    if (smooth && mag > 1.0f) {
        float log_zn = log(mag) / 2.0f;
        float nu = log(log_zn / M_LN2_F) / M_LN2_F;
        value = fmax(0.0f, value + 1.0f - nu);
    }

    const float top = (float)(palette_size - 1);
    float scaled = value * pscale;
    int wrap = colour_mode == 1;
    if (wrap) {
        scaled = fmod(scaled, (float)palette_size);
    } else {
        scaled = clamp(scaled, 0.0f, top);
    }
    if (dither > 0.0f) {
        float h = sin((float)px * 12.9898f + (float)py * 78.233f) * 43758.5453f;
        scaled = clamp(scaled + (h - floor(h) - 0.5f) * dither, 0.0f, top);
        wrap = 0;
    }

    int idx = (int)floor(scaled);
    int nxt;
    float blend;
    if (wrap) {
        idx = idx % palette_size;
        nxt = (idx + 1) % palette_size;
        blend = scaled - floor(scaled);
    } else {
        idx = clamp(idx, 0, palette_size - 1);
        if (smooth) idx = min(idx, palette_size - 2);
        nxt = min(idx + 1, palette_size - 1);
        blend = clamp(scaled - (float)idx, 0.0f, 1.0f);
    }
    if (!smooth) blend = 0.0f;
    for (int c = 0; c < 3; ++c) {
        float v = mix(palette[3 * idx + c], palette[3 * nxt + c], blend);
        out[o + c] = (uchar)clamp(rint(v), 0.0f, 255.0f);
    }
}
""")

# ---- per-precision pieces ----

_SINGLE = {
    "seed": """
    float sx = x0_hi + ((float)px * x_scale + x0_lo);
    float sy = y0_hi + ((float)py * y_scale + y0_lo);""",
    "julia": "    float zr = sx, zi = sy, cr = jr, ci = ji;",
    "origin": "    float zr = 0.0f, zi = 0.0f, cr = sx, ci = sy;",
    "magnitude": "    mag = zr * zr + zi * zi;",
    "steps": {
        "quadratic": """
        float nr = zr * zr - zi * zi + cr;
        float ni = 2.0f * zr * zi + ci;
        zr = nr; zi = ni;""",
        "burning_ship": """
        float ar = fabs(zr), ai = fabs(zi);
        float nr = ar * ar - ai * ai + cr;
        float ni = 2.0f * ar * ai + ci;
        zr = nr; zi = ni;""",
        "tricorn": """
        float nr = zr * zr - zi * zi + cr;
        float ni = -2.0f * zr * zi + ci;
        zr = nr; zi = ni;""",
        "multibrot3": """
        float zr2 = zr * zr, zi2 = zi * zi;
        float nr = zr * (zr2 - 3.0f * zi2) + cr;
        float ni = zi * (3.0f * zr2 - zi2) + ci;
        zr = nr; zi = ni;""",
    },
}

_DOUBLE_DOUBLE = {
    "seed": """
    float2 sx = dd_add((float2)(x0_hi, x0_lo), two_prod((float)px, x_scale));
    float2 sy = dd_add((float2)(y0_hi, y0_lo), two_prod((float)py, y_scale));""",
    "julia": "    float2 zr = sx, zi = sy, cr = (float2)(jr, 0.0f), ci = (float2)(ji, 0.0f);",
    "origin": "    float2 zr = (float2)(0.0f, 0.0f), zi = (float2)(0.0f, 0.0f), cr = sx, ci = sy;",
    "magnitude": "    mag = zr.x * zr.x + zi.x * zi.x;",
    "steps": {
        "quadratic": """
        float2 nr = dd_add(dd_sub(dd_mul(zr, zr), dd_mul(zi, zi)), cr);
        float2 ni = dd_add(dd_mulf(dd_mul(zr, zi), 2.0f), ci);
        zr = nr; zi = ni;""",
        "burning_ship": """
        float2 ar = dd_abs(zr), ai = dd_abs(zi);
        float2 nr = dd_add(dd_sub(dd_mul(ar, ar), dd_mul(ai, ai)), cr);
        float2 ni = dd_add(dd_mulf(dd_mul(ar, ai), 2.0f), ci);
        zr = nr; zi = ni;""",
        "tricorn": """
        float2 nr = dd_add(dd_sub(dd_mul(zr, zr), dd_mul(zi, zi)), cr);
        float2 ni = dd_add(dd_mulf(dd_mul(zr, zi), -2.0f), ci);
        zr = nr; zi = ni;""",
        "multibrot3": """
        float2 zr2 = dd_mul(zr, zr), zi2 = dd_mul(zi, zi);
        float2 nr = dd_add(dd_mul(zr, dd_sub(zr2, dd_mulf(zi2, 3.0f))), cr);
        float2 ni = dd_add(dd_mul(zi, dd_sub(dd_mulf(zr2, 3.0f), zi2)), ci);
        zr = nr; zi = ni;""",
    },
}

_LIMB = {
    "seed": """
    float x0[LIMB_COUNT], y0[LIMB_COUNT], t[LIMB_COUNT];
    float sx[LIMB_COUNT], sy[LIMB_COUNT];
    float zr[LIMB_COUNT], zi[LIMB_COUNT], cr[LIMB_COUNT], ci[LIMB_COUNT];
    float s0[LIMB_COUNT], s1[LIMB_COUNT], s2[LIMB_COUNT], s3[LIMB_COUNT];
    float s4[LIMB_COUNT], s5[LIMB_COUNT], s6[LIMB_COUNT], s7[LIMB_COUNT];
    for (int i = 0; i < LIMB_COUNT; ++i) { x0[i] = x0_limbs[i]; y0[i] = y0_limbs[i]; }
    limb_from_float((float)px * x_scale, t);
    limb_add(x0, t, sx);
    limb_from_float((float)py * y_scale, t);
    limb_add(y0, t, sy);""",
    "julia": """
    limb_from_float(jr, cr);
    limb_from_float(ji, ci);
    for (int i = 0; i < LIMB_COUNT; ++i) { zr[i] = sx[i]; zi[i] = sy[i]; }""",
    "origin": """
    for (int i = 0; i < LIMB_COUNT; ++i) { zr[i] = 0.0f; zi[i] = 0.0f; cr[i] = sx[i]; ci[i] = sy[i]; }""",
    "magnitude": """
    { float fr = limb_to_float(zr), fi = limb_to_float(zi); mag = fr * fr + fi * fi; }""",
    "steps": {
        "quadratic": """
        limb_mul(zr, zr, s0); limb_mul(zi, zi, s1); limb_mul(zr, zi, s2);
        limb_sub(s0, s1, s3); limb_add(s3, cr, zr);
        limb_mul_scalar(s2, 2.0f, s4); limb_add(s4, ci, zi);""",
        "burning_ship": """
        limb_abs(zr); limb_abs(zi);
        limb_mul(zr, zr, s0); limb_mul(zi, zi, s1); limb_mul(zr, zi, s2);
        limb_sub(s0, s1, s3); limb_add(s3, cr, zr);
        limb_mul_scalar(s2, 2.0f, s4); limb_add(s4, ci, zi);""",
        "tricorn": """
        limb_mul(zr, zr, s0); limb_mul(zi, zi, s1); limb_mul(zr, zi, s2);
        limb_sub(s0, s1, s3); limb_add(s3, cr, zr);
        limb_mul_scalar(s2, -2.0f, s4); limb_add(s4, ci, zi);""",
        "multibrot3": """
        limb_mul(zr, zr, s0); limb_mul(zi, zi, s1);
        limb_mul_scalar(s1, 3.0f, s4); limb_sub(s0, s4, s3); limb_mul(zr, s3, s5);
        limb_mul_scalar(s0, 3.0f, s4); limb_sub(s4, s1, s6); limb_mul(zi, s6, s7);
        limb_add(s5, cr, zr); limb_add(s7, ci, zi);""",
    },
}

_STEP_NAMES = {
    Algorithm.MANDELBROT: "quadratic",
    Algorithm.JULIA: "quadratic",
    Algorithm.BURNING_SHIP: "burning_ship",
    Algorithm.TRICORN: "tricorn",
    Algorithm.MULTIBROT_3: "multibrot3",
}

# -cl-fast-relaxed-math would reassociate the error-free transformations
_OPTS_FAST = ["-cl-fast-relaxed-math"]
_OPTS_EXACT: list = []


def variant_key(precision: Precision, fractional: int = LimbProfile.BALANCED.value) -> str:
    if precision is Precision.LIMB:
        return f"LIMB{int(fractional)}"
    return precision.name


def build_source(algorithm: Algorithm, precision: Precision,
                 fractional: int = LimbProfile.BALANCED.value) -> Tuple[str, list]:
    """
    Assemble the program for one variant.
    :return: (source, build options)
    """
    if precision is Precision.NATIVE:
        parts, funcs, opts = _SINGLE, "", _OPTS_FAST
    elif precision is Precision.DOUBLE_DOUBLE:
        parts, funcs, opts = _DOUBLE_DOUBLE, _DD_FUNCS, _OPTS_EXACT
    elif precision is Precision.LIMB:
        scale = float(1024 ** int(fractional))
        funcs = _LIMB_FUNCS.substitute(count=LIMB_COUNT, fractional=int(fractional),
                                       scale=f"{scale:.1f}f")
        parts, opts = _LIMB, _OPTS_EXACT
    else:
        raise ValueError(f"No GPU program for precision {precision}")

    init = parts["julia"] if algorithm is Algorithm.JULIA else parts["origin"]
    src = _FRAME.substitute(
        funcs=funcs,
        seed=parts["seed"],
        init=init,
        magnitude=parts["magnitude"],
        step=parts["steps"][_STEP_NAMES[algorithm]],
    )
    return src, list(opts)


def _register_all() -> None:
    variants = [(Precision.NATIVE, 0), (Precision.DOUBLE_DOUBLE, 0)]
    variants += [(Precision.LIMB, p.value) for p in LimbProfile]
    for algorithm in Algorithm:
        for precision, fractional in variants:
            src, opts = build_source(algorithm, precision, fractional or LimbProfile.BALANCED.value)
            register_kernel("OPENCL", algorithm, "frame", variant_key(precision, fractional),
                            src=src, kernel_name=KERNEL_NAME, build_options=opts)


_register_all()
