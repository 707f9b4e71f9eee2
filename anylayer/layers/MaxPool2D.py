from .Layer import Layer
from .TangentVector import EmptyTangentVector


class MaxPool2D(Layer):
    def __init__(self, kernel_size=2, stride=2, device=None):
        super().__init__(device)
        self.kernel_size = kernel_size
        self.stride = stride

    def _windows(self, x, H_out, W_out):
        # Vectorized pooling windows: (batch, channels, H_out*W_out, k*k)
        dev = self.device
        batch_size, channels, _, _ = x.shape
        k, s = self.kernel_size, self.stride

        h_grid, w_grid = dev.meshgrid(dev.arange(H_out), dev.arange(W_out), indexing="ij")
        kh_grid, kw_grid = dev.meshgrid(dev.arange(k), dev.arange(k), indexing="ij")

        # h_starts: (H_out, W_out) -> (H_out, W_out, 1, 1); kh_grid: (k, k) -> (1, 1, k, k)
        h_all = (h_grid * s)[:, :, None, None] + kh_grid[None, None, :, :]
        w_all = (w_grid * s)[:, :, None, None] + kw_grid[None, None, :, :]

        batch_idx = dev.arange(batch_size)[:, None, None, None, None, None]
        channel_idx = dev.arange(channels)[None, :, None, None, None, None]
        windows = x[batch_idx, channel_idx, h_all[None, None], w_all[None, None]]
        return dev.reshape(windows, (batch_size, channels, H_out * W_out, -1))

    def forward(self, x):
        return self.forward_with_pullback(x)[0]

    def forward_with_pullback(self, x):
        # x shape: (batch, channels, H, W)
        # return: (batch, channels, H_out, W_out)
        dev = self.device
        x = dev.ensure_array(x)
        B, C, H_in, W_in = x.shape
        k, s = self.kernel_size, self.stride

        H_out = (H_in - k) // s + 1
        W_out = (W_in - k) // s + 1

        cols = self._windows(x, H_out, W_out)

        # argmax positions inside each window (flattened index 0..k*k-1)
        argmax = dev.reshape(dev.argmax(cols, axis=-1), (B, C, H_out, W_out))
        out = dev.reshape(dev.max(cols, axis=-1), (B, C, H_out, W_out))

        def pullback(grad_out):
            go = dev.reshape(dev.ensure_array(grad_out), (B, C, H_out, W_out))

            # flattened argmax -> (u, v) offsets within the k x k window
            u = argmax // k
            v = argmax % k

            grad_x = dev.zeros(x.shape, dtype=go.dtype)
            batch_indices = dev.arange(B)[:, None]  # (B, 1)
            channel_indices = dev.arange(C)[None, :]  # (1, C)

            # One window position per iteration, vectorized over batch/channel
            for h_idx in range(H_out):
                for w_idx in range(W_out):
                    h_abs = h_idx * s + u[:, :, h_idx, w_idx]  # (B, C)
                    w_abs = w_idx * s + v[:, :, h_idx, w_idx]  # (B, C)
                    grad_x[batch_indices, channel_indices, h_abs, w_abs] += go[:, :, h_idx, w_idx]

            return EmptyTangentVector(), grad_x

        return out, pullback

    def __repr__(self):
        return f"MaxPool2D(kernel_size={self.kernel_size}, stride={self.stride})"
