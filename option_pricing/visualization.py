import matplotlib.pyplot as plt
import numpy as np

GREEK_KEYS = ['delta', 'gamma', 'vega', 'theta', 'rho']


class Visualizer:
    """
    Handles plotting of Greek sensitivities.
    """

    @staticmethod
    def greek_profile(engine, spot_prices: np.ndarray) -> dict:
        """
        Reprices the engine's option at each spot price.
        Returns one array per Greek, with nan where the Greek is undefined.
        The stock's own price is restored afterwards.
        """
        greeks_data = {key: [] for key in GREEK_KEYS}
        original_price = engine.stock.price
        try:
            for spot in spot_prices:
                engine.stock.price = float(spot)
                greeks = engine.greeks()
                for key in greeks_data:
                    greeks_data[key].append(np.nan if greeks[key] is None else greeks[key])
        finally:
            engine.stock.price = original_price

        return {key: np.array(values, dtype=float) for key, values in greeks_data.items()}

    @staticmethod
    def plot_greeks(spot_prices: np.ndarray, greeks_dict: dict, title: str = "Greek sensitivity to the underlying price", pdf=None):
        """
        Plots Delta, Gamma, Vega, Theta, and Rho against spot price.
        """
        fig, axes = plt.subplots(3, 2, figsize=(15, 12))
        fig.suptitle(title, fontsize=16)

        # Flatten axes for easy iteration
        axes = axes.flatten()

        for i, greek in enumerate(GREEK_KEYS):
            ax = axes[i]
            ax.plot(spot_prices, greeks_dict[greek], lw=2)
            ax.set_title(greek.capitalize())
            ax.set_xlabel("Spot Price")
            ax.set_ylabel(greek.capitalize())
            ax.grid(True, alpha=0.3)

        # 5 greeks, 6 slots
        for i in range(len(GREEK_KEYS), len(axes)):
            axes[i].axis('off')

        plt.tight_layout(rect=[0, 0.03, 1, 0.95])

        if pdf:
            pdf.savefig(fig)
            plt.close(fig)
        else:
            plt.show()
        return fig
