# anylayer/helpers/Backend.py
import os
import numpy as np

VERBOSE_STARTUP = False  # set True to print device banners on import

# Every tangent in the package uses this scalar kind
SCALAR = np.float32

# "auto" prefers the GPU when CuPy works, "cpu" / "gpu" force a device
DEVICE_PREFERENCE = os.environ.get("ANYLAYER_DEVICE", "auto").lower()

try:
    import cupy as cp
    if VERBOSE_STARTUP:
        print("CuPy:", cp.__version__)
        print("GPU count:", cp.cuda.runtime.getDeviceCount())
    # Quick runtime check
    try:
        _ = (cp.array([1, 2, 3]) + 1).sum()
        CUPY_AVAILABLE = True
        if VERBOSE_STARTUP:
            print("CuPy is available - GPU acceleration enabled")
    except Exception as e:
        if VERBOSE_STARTUP:
            print(f"CuPy installed but CUDA runtime error: {e}")
            print("Falling back to CPU (NumPy)")
        cp = None
        CUPY_AVAILABLE = False
except ImportError:
    cp = None
    CUPY_AVAILABLE = False
    if VERBOSE_STARTUP:
        print("CuPy not available - using NumPy (CPU)")


def array_module(x):
    """Return numpy or cupy, whichever owns ``x``."""
    if cp is not None and isinstance(x, cp.ndarray):
        return cp
    return np


class Device:
    """An execution locality: ``cpu`` (NumPy) or ``gpu:<ordinal>`` (CuPy).

    Layers hold a device and run every array operation through it, so
    copying a layer to another device only has to relocate its arrays.
    Devices compare by kind and ordinal.
    """

    def __init__(self, kind="cpu", ordinal=0, default_float=SCALAR):
        kind = kind.lower()
        if kind not in ("cpu", "gpu"):
            raise ValueError(f"Unknown device kind: {kind!r}")
        if kind == "gpu" and not CUPY_AVAILABLE:
            raise RuntimeError("GPU device requested but CuPy is not available")
        self.kind = kind
        self.ordinal = int(ordinal) if kind == "gpu" else 0
        self.default_float = default_float

    @classmethod
    def cpu(cls):
        return cls("cpu")

    @classmethod
    def gpu(cls, ordinal=0):
        return cls("gpu", ordinal)

    @classmethod
    def default(cls):
        if DEVICE_PREFERENCE == "gpu":
            return cls.gpu()
        if DEVICE_PREFERENCE == "auto" and CUPY_AVAILABLE:
            return cls.gpu()
        return cls.cpu()

    @property
    def use_gpu(self):
        return self.kind == "gpu"

    @property
    def xp(self):
        return cp if self.use_gpu else np

    def __eq__(self, other):
        if not isinstance(other, Device):
            return NotImplemented
        return (self.kind, self.ordinal) == (other.kind, other.ordinal)

    def __hash__(self):
        return hash((self.kind, self.ordinal))

    # devices are identities, copies of a layer keep pointing at the same one
    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __repr__(self):
        if self.use_gpu:
            return f"Device(gpu:{self.ordinal})"
        return "Device(cpu)"

    # -------- device transfer --------
    def to_cpu(self, x):
        """Move array to CPU (NumPy)."""
        if cp is not None and isinstance(x, cp.ndarray):
            return cp.asnumpy(x)
        return x

    def ensure_array(self, x, dtype=None, copy=False):
        """
        Ensure 'x' is an array living on this device.
        Accepts list/tuple/np/cp arrays; returns xp.ndarray.
        With copy=True the result never aliases 'x'.
        """
        if self.use_gpu:
            with cp.cuda.Device(self.ordinal):
                if isinstance(x, cp.ndarray) and x.device.id == self.ordinal:
                    arr = x.copy() if copy else x
                else:
                    # cp.asarray copies across devices and from host memory
                    arr = cp.asarray(x)
                if dtype is not None and arr.dtype != dtype:
                    arr = arr.astype(dtype)
                return arr
        if cp is not None and isinstance(x, cp.ndarray):
            arr = cp.asnumpy(x)
        else:
            arr = np.array(x, copy=True) if copy else np.asarray(x)
        if dtype is not None and arr.dtype != dtype:
            arr = arr.astype(dtype)
        return arr

    def astype_default(self, x):
        """Cast to default float dtype if needed."""
        return self.ensure_array(x, dtype=self.default_float)

    # -------- array creation --------
    def zeros(self, *args, **kwargs):
        kwargs.setdefault("dtype", self.default_float)
        return self.xp.zeros(*args, **kwargs)

    def ones(self, *args, **kwargs):
        kwargs.setdefault("dtype", self.default_float)
        return self.xp.ones(*args, **kwargs)

    def zeros_like(self, x):
        return self.xp.zeros_like(x)

    # -------- math / linalg (thin wrappers) --------
    def maximum(self, a, b):return self.xp.maximum(a, b)
    def sum(self, x, axis=None, keepdims=False):  return self.xp.sum(x, axis=axis, keepdims=keepdims)
    def max(self, x, axis=None, keepdims=False):  return self.xp.max(x, axis=axis, keepdims=keepdims)
    def argmax(self, x, axis=None):               return self.xp.argmax(x, axis=axis)
    def exp(self, x):                              return self.xp.exp(x)
    def log(self, x):                              return self.xp.log(x)
    def transpose(self, x, axes=None):            return self.xp.transpose(x, axes)
    def reshape(self, x, shape):                   return self.xp.reshape(x, shape)
    def matmul(self, a, b):                        return self.xp.matmul(a, b)
    def arange(self, *args, **kwargs):             return self.xp.arange(*args, **kwargs)
    def meshgrid(self, *args, **kwargs):           return self.xp.meshgrid(*args, **kwargs)
    def tile(self, x, reps):                       return self.xp.tile(x, reps)
    def repeat(self, x, repeats, axis=None):       return self.xp.repeat(x, repeats, axis=axis)

    def pad(self, array, pad_width, mode="constant", **kwargs):
        return self.xp.pad(array, pad_width, mode=mode, **kwargs)

    # -------- GPU sync --------
    def synchronize(self):
        """Block until all queued GPU kernels complete (for timing)."""
        if self.use_gpu:
            cp.cuda.Stream.null.synchronize()

    # -------- delegate unknown attrs to xp --------
    def __getattr__(self, name):
        if name.startswith("__") or name in ("kind", "ordinal", "default_float"):
            raise AttributeError(name)
        return getattr(self.xp, name)


# Global default device - layers fall back to it when none is given
default_device = Device.default()
if VERBOSE_STARTUP:
    print(f"Using {default_device}")
