import numpy as np
from .Layer import Layer
from .TangentVector import TangentVector
from ..helpers.Backend import SCALAR


class Conv2DTangent(TangentVector):
    fields = ("weights", "bias")


class Conv2D(Layer):
    TangentVector = Conv2DTangent
    param_names = ("weights", "bias")

    def __init__(self, in_channels, out_channels, kernel_size=3, stride=1, padding=0, device=None):
        # in_channels -> channels of the input image (3 for RGB).
        # out_channels -> the number of filters/kernels you want to learn in that layer.
        # weights: (out_channels, in_channels, kernel_size, kernel_size)
        # bias: (out_channels, 1)
        super().__init__(device)
        self.in_channels = in_channels
        self.out_channels = out_channels
        self.kernel_size = kernel_size
        self.stride = stride
        self.padding = padding

        # He initialization
        fan_in = in_channels * kernel_size * kernel_size

        # Initialize on CPU, then move to the layer's device
        weights_cpu = (
            np.random.randn(out_channels, in_channels, kernel_size, kernel_size)
            * np.sqrt(2.0 / fan_in)
        ).astype(SCALAR)
        bias_cpu = np.zeros((out_channels, 1), dtype=SCALAR)

        self.weights = self.device.ensure_array(weights_cpu)
        self.bias = self.device.ensure_array(bias_cpu)

    # ----- helpers -----
    def _pad(self, x):
        if self.padding == 0:
            return x
        p = self.padding
        return self.device.pad(x, ((0, 0), (0, 0), (p, p), (p, p)), mode="constant")

    def _im2col(self, x_pad, H_out, W_out):
        # Vectorized im2col using pure device operations (no loops!)
        dev = self.device
        batch_size, in_channels, _, _ = x_pad.shape
        k, s = self.kernel_size, self.stride

        # Starting position of every patch: (H_out, W_out)
        h_grid, w_grid = dev.meshgrid(dev.arange(H_out), dev.arange(W_out), indexing="ij")
        h_starts = h_grid * s
        w_starts = w_grid * s

        # Kernel offsets: (k, k)
        kh_grid, kw_grid = dev.meshgrid(dev.arange(k), dev.arange(k), indexing="ij")

        # Absolute positions: (H_out, W_out, k, k)
        h_all = h_starts[:, :, None, None] + kh_grid[None, None, :, :]
        w_all = w_starts[:, :, None, None] + kw_grid[None, None, :, :]

        # Extract patches: (batch, in_channels, H_out, W_out, k, k)
        batch_idx = dev.arange(batch_size)[:, None, None, None, None, None]
        channel_idx = dev.arange(in_channels)[None, :, None, None, None, None]
        patches = x_pad[batch_idx, channel_idx, h_all[None, None], w_all[None, None]]

        # Column format: (batch, H_out*W_out, in_channels*k*k)
        return dev.reshape(dev.transpose(patches, (0, 2, 3, 1, 4, 5)), (batch_size, H_out * W_out, -1))

    def forward(self, x):
        return self.forward_with_pullback(x)[0]

    def forward_with_pullback(self, x):
        # x shape: (batch, in_channels, H, W)
        # return: (batch, out_channels, H_out, W_out)
        # H_out = (H + 2*padding - kernel_size)//stride + 1
        dev = self.device
        x = dev.ensure_array(x)
        weights, bias = self.weights, self.bias
        k, s, p = self.kernel_size, self.stride, self.padding
        O = self.out_channels
        batch_size, channels, H_in, W_in = x.shape

        H_out = (H_in + 2 * p - k) // s + 1
        W_out = (W_in + 2 * p - k) // s + 1
        HW = H_out * W_out

        cols = self._im2col(self._pad(x), H_out, W_out)  # (B, HW, Ck2)

        # each filter is flattened into a row vector: (O, Ck2)
        W_col = dev.reshape(weights, (O, -1))

        # multiply all patches with all filters at once: (B, HW, O)
        out = dev.matmul(cols, dev.transpose(W_col)) + dev.transpose(bias)
        # (B, O, HW) -> (B, O, H_out, W_out)
        out = dev.reshape(dev.transpose(out, (0, 2, 1)), (batch_size, O, H_out, W_out))

        def pullback(grad_out):
            """
            grad_out: (B, O, H_out, W_out)
            returns:  (Conv2DTangent, grad_input shaped like x)
            """
            grad_out = dev.ensure_array(grad_out)

            # go: (B, HW, O), the forward column arrangement
            go = dev.transpose(dev.reshape(grad_out, (batch_size, O, HW)), (0, 2, 1))

            # ---- dW and db ----
            # Equivalent to einsum("bho,bhc->oc", go, cols)
            dW_col = dev.matmul(
                dev.transpose(dev.reshape(go, (-1, O))),
                dev.reshape(cols, (-1, cols.shape[-1])),
            )  # (O, Ck2)
            dW = dev.reshape(dW_col, weights.shape)
            db = dev.reshape(dev.sum(go, axis=(0, 1)), (O, 1))

            # ---- dX via col2im ----
            cols_grad = dev.matmul(go, W_col)  # (B, HW, Ck2)
            cols_grad = dev.reshape(cols_grad, (batch_size, H_out, W_out, channels, k, k))

            grad_xp = dev.zeros((batch_size, channels, H_in + 2 * p, W_in + 2 * p), dtype=cols_grad.dtype)
            # Each iteration handles one spatial position for all batches/channels at once
            for h_idx in range(H_out):
                for w_idx in range(W_out):
                    h_start = h_idx * s
                    w_start = w_idx * s
                    grad_xp[:, :, h_start:h_start + k, w_start:w_start + k] += cols_grad[:, h_idx, w_idx]

            # Remove padding
            grad_in = grad_xp[:, :, p:-p, p:-p] if p > 0 else grad_xp
            return Conv2DTangent(weights=dW, bias=db), grad_in

        return out, pullback

    def __repr__(self):
        return (
            f"Conv2D({self.in_channels}, {self.out_channels}, kernel_size={self.kernel_size}, "
            f"stride={self.stride}, padding={self.padding})"
        )
