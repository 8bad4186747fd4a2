import json
import os

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import plotly.graph_objects as go


class Outputter(object):
    """
    Collects results in a nested dictionary, keyed by a path of names, and
    saves them as files once a run is finished.
    """

    def __init__(self, name="Outputs"):
        self.name = name
        self.output = {}

    def out(self, value, *path):
        """
        Input
        -------
        value: DataFrame, figure, array, scalar or dict to store
        path: one or more names; all but the last name nested dictionaries
        """
        if not path:
            raise ValueError("An output needs at least one name")
        node = self.output
        for key in path[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                if child is not None:
                    print("Warning: output '%s' replaced by a group" % key)
                child = {}
                node[key] = child
            node = child
        if path[-1] in node:
            print("Warning: output '%s' already exists and will be overwritten" % "/".join(path))
        node[path[-1]] = value

    def get(self, *path):
        node = self.output
        for key in path:
            node = node[key]
        return node

    def flatten(self, separator="/"):
        flat = {}

        def visit(node, prefix):
            for key, value in node.items():
                name = "%s%s%s" % (prefix, separator, key) if prefix else str(key)
                if isinstance(value, dict) and not _is_leaf_dict(value):
                    visit(value, name)
                else:
                    flat[name] = value

        visit(self.output, "")
        return flat

    def save(self, folder):
        """Writes every output under `folder`, one file per leaf."""
        print("Saving outputs...")
        for name, value in self.flatten().items():
            path = os.path.join(folder, *name.split("/"))
            os.makedirs(os.path.dirname(path), exist_ok=True)
            save_value(value, path)
        print("Done saving.")


def _is_leaf_dict(value):
    return len(value) > 0 and all(not isinstance(v, (dict, pd.DataFrame, plt.Figure, go.Figure)) for v in value.values())


def save_value(value, path):
    if isinstance(value, pd.DataFrame):
        value.to_csv(path + ".csv")
    elif isinstance(value, pd.Series):
        value.to_frame().to_csv(path + ".csv")
    elif isinstance(value, plt.Figure):
        value.savefig(path + ".png", bbox_inches="tight")
        plt.close(value)
    elif isinstance(value, go.Figure):
        value.write_html(path + ".html")
    else:
        with open(path + ".json", "w") as handle:
            json.dump(value, handle, indent=2, default=_to_json)


def _to_json(value):
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (np.integer, np.floating, np.bool_)):
        return value.item()
    return str(value)
