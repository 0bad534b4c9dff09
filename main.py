"""
CSV Cluster Explorer - command line runner.

Loads a CSV, reports the inferred schema, runs one K-Means clustering pass in
the background worker and writes the labelled rows and plots. With --sweep it
also runs k = 2..10 and produces the Elbow Method plot.

Defaults live in RUN_CONFIG; every entry can be overridden from the command
line.

Example
-------
    python main.py data.csv --features height weight -k 3 --normalise --sweep
"""

import argparse
import datetime
import logging
import os
import sys

import matplotlib.pyplot as plt
import pandas as pd

from algorithms.exceptions import ValidationError
from analysis.visualization import plot_elbow
from explorer.session import ExplorerSession
from explorer.sweep import run_k_sweep
from utils.logging_config import configure_logging
from utils.parser import DatasetError

# ---------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------
RUN_CONFIG = {
    "k": 3,
    "max_iterations": 30,
    "max_rows": 20000,
    "numeric_threshold": 0.85,
    "normalise": False,
    "plot": True,
    "sweep": False,
    "output_directory": "results",
}


def save_dataframe(data, folder, filename):
    if isinstance(data, pd.DataFrame):
        if data.empty: return
        df_to_save = data
    elif not data:
        return
    else:
        df_to_save = pd.DataFrame(data)

    os.makedirs(folder, exist_ok=True)
    df_to_save.to_csv(os.path.join(folder, filename), index=False)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Explore a CSV dataset and cluster it with K-Means.")
    parser.add_argument("csv", help="Path to the CSV file.")
    parser.add_argument("--features", nargs="+", help="Numeric columns to cluster on (2-8). "
                                                      "Defaults to the first two numeric columns.")
    parser.add_argument("-k", type=int, default=RUN_CONFIG["k"], help="Number of clusters (2-10).")
    parser.add_argument("--max-iter", type=int, default=RUN_CONFIG["max_iterations"])
    parser.add_argument("--max-rows", type=int, default=RUN_CONFIG["max_rows"])
    parser.add_argument("--threshold", type=float, default=RUN_CONFIG["numeric_threshold"],
                        help="Numeric column threshold.")
    parser.add_argument("--normalise", action="store_true", default=RUN_CONFIG["normalise"],
                        help="Min-max scale numeric columns before clustering.")
    parser.add_argument("--x", dest="x_field", help="X axis column for the scatter plot.")
    parser.add_argument("--y", dest="y_field", help="Y axis column for the scatter plot.")
    parser.add_argument("--no-plot", dest="plot", action="store_false", default=RUN_CONFIG["plot"])
    parser.add_argument("--sweep", action="store_true", default=RUN_CONFIG["sweep"],
                        help="Also run k=2..10 and plot the elbow curve.")
    parser.add_argument("--out", default=RUN_CONFIG["output_directory"], help="Output directory.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def print_summary(session: ExplorerSession) -> None:
    info = session.summary()
    truncated = " (truncated)" if info["truncated"] else ""
    print(f"Rows: {info['rows']}{truncated}")
    print(f"Columns: {info['columns']}")
    print(f"Numeric columns: {info['numeric_columns']} {session.schema.numeric}")
    print(f"Categorical columns: {info['categorical_columns']} {session.schema.categorical}")
    print("\nPreview:")
    print(session.preview().to_string(index=False))


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    session_id = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    base_dir = os.path.join(args.out, f"run_{session_id}")

    session = ExplorerSession(numeric_threshold=args.threshold, max_rows=args.max_rows)
    try:
        session.load_csv(args.csv)
    except (OSError, DatasetError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print_summary(session)
    session.set_normalise(args.normalise)

    features = args.features or session.schema.numeric[:2]
    if args.x_field or args.y_field:
        try:
            session.select_axes(args.x_field or session.x_field, args.y_field or session.y_field)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    with session:
        try:
            future = session.cluster(features, args.k, args.max_iter)
        except ValidationError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

        print(f"\nClustering on {features} with k={args.k} ...")
        outcome = future.result()

    if not outcome.ok:
        print(f"Clustering failed: {outcome.error}", file=sys.stderr)
        return 1

    print(f"Status: {outcome.status} after {outcome.iterations} iterations")
    print(f"Inertia: {outcome.inertia:.6g}")
    print(f"Rows clustered: {outcome.n_valid} (excluded: {outcome.n_excluded})")
    for c, (count, centroid) in enumerate(zip(outcome.counts, outcome.centroids)):
        coords = ", ".join(f"{f}={v:.4g}" for f, v in zip(outcome.features, centroid))
        print(f"  Cluster {c}: {count} rows | {coords}")

    labelled = session.dataset.to_frame()
    labelled["cluster"] = outcome.labels
    save_dataframe(labelled, base_dir, "labelled_rows.csv")

    if args.plot:
        fig = session.plot(outcome, save_path=os.path.join(base_dir, "clusters.png"))
        if fig is not None:
            plt.close(fig)

    if args.sweep:
        print("\nRunning k sweep ...")
        sweep_df = run_k_sweep(session.rows, features, max_iterations=args.max_iter)
        save_dataframe(sweep_df, base_dir, "k_sweep.csv")
        print(sweep_df[["k", "inertia", "iterations", "silhouette", "davies_bouldin"]].to_string(index=False))
        if args.plot:
            fig = plot_elbow(sweep_df, save_path=os.path.join(base_dir, "elbow.png"))
            if fig is not None:
                plt.close(fig)

    print(f"\nRun complete. Results saved in {base_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
