"""
local_embedder -- Command Line Interface
==========================================
Entry point for the user-facing operations.

Commands:
  embed       -- Embed one or more texts and print the vectors
  similarity  -- Cosine similarity / distance between two texts
  tokenize    -- Show WordPiece pieces, ids and attention mask for a text
  models      -- List pre-configured model ids
  devices     -- List available OpenVINO hardware devices
  download    -- Fetch a model into the local cache
  benchmark   -- Time batch embedding on the selected device

Usage examples:
  python cli.py embed "Hello world" "Another sentence"
  python cli.py embed "Hello world" --json
  python cli.py similarity "The cat sat" "A cat was sitting"
  python cli.py tokenize "Hello, world." --vocab models/vocab.txt
  python cli.py --model bge-small-en-v1.5 download
  python cli.py devices

Design notes:
  - argparse from the standard library.
  - Each command maps to a handler function.
  - Defaults (model, device, pooling...) come from configs/settings.yaml;
    --settings points at another file.
  - Library errors are printed as a one-line message with exit code 1.
"""

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

from tqdm import tqdm

import local_embedder
from local_embedder.download import DownloadProgress, HuggingFaceDownloader
from local_embedder.exceptions import LocalEmbedderError
from local_embedder.inference import DeviceManager
from local_embedder.loader import resolve_model_files
from local_embedder.settings import EmbedderOptions, load_settings
from local_embedder.tokenization import BertTokenizer
from local_embedder.utils import model_registry

DEFAULT_MODEL = "all-MiniLM-L6-v2"


def setup_logging(verbose: bool = False) -> None:
    """Configure root logger."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


class DownloadBars:
    """One tqdm bar per downloaded file, fed by DownloadProgress updates."""

    def __init__(self):
        self._bars: Dict[str, tqdm] = {}

    def __call__(self, update: DownloadProgress) -> None:
        bar = self._bars.get(update.file_name)
        if bar is None:
            bar = tqdm(
                total=update.total_bytes or None,
                desc=update.file_name,
                unit="B",
                unit_scale=True,
            )
            self._bars[update.file_name] = bar
        bar.update(update.bytes_downloaded - bar.n)

    def close(self) -> None:
        for bar in self._bars.values():
            bar.close()


# ===================================================================
# Helpers
# ===================================================================

def _options(args: argparse.Namespace) -> EmbedderOptions:
    options = EmbedderOptions.from_settings(args.settings_data)
    if args.device:
        options.device = args.device
    return options


def _model_name(args: argparse.Namespace) -> str:
    if args.model:
        return args.model
    return (args.settings_data.get("embedder") or {}).get("model", DEFAULT_MODEL)


def _load(args: argparse.Namespace) -> "local_embedder.EmbeddingModel":
    bars = DownloadBars()
    try:
        return local_embedder.load(_model_name(args), _options(args), progress=bars)
    finally:
        bars.close()


# ===================================================================
# Command handlers
# ===================================================================

def cmd_embed(args: argparse.Namespace) -> None:
    """Embed texts and print one vector per line (or JSON)."""
    with _load(args) as model:
        vectors = model.embed_batch(args.texts)

    if args.json:
        payload = [
            {"text": text, "embedding": [round(float(x), 6) for x in vec]}
            for text, vec in zip(args.texts, vectors)
        ]
        print(json.dumps(payload, ensure_ascii=False))
        return

    for text, vec in zip(args.texts, vectors):
        head = ", ".join(f"{x:.4f}" for x in vec[: args.preview])
        print(f"{text!r}  dim={len(vec)}  [{head}, ...]")


def cmd_similarity(args: argparse.Namespace) -> None:
    """Compare two texts."""
    with _load(args) as model:
        a, b = model.embed_batch([args.first, args.second])

    print(f"  cosine    : {local_embedder.cosine_similarity(a, b):.4f}")
    print(f"  euclidean : {local_embedder.euclidean_distance(a, b):.4f}")
    print(f"  dot       : {local_embedder.dot_product(a, b):.4f}")


def cmd_tokenize(args: argparse.Namespace) -> None:
    """Show how a text is tokenized."""
    options = _options(args)
    if args.vocab:
        vocab_path = args.vocab
        do_lower_case = not args.cased
    else:
        _, _, vocab_path, options, _ = resolve_model_files(
            _model_name(args), options, progress=None
        )
        do_lower_case = options.do_lower_case

    tokenizer = BertTokenizer.from_vocab(vocab_path, do_lower_case=do_lower_case)
    max_length = args.max_length or options.max_sequence_length
    pieces = tokenizer.tokenize(args.text)
    ids, mask = tokenizer.encode(args.text, max_length)
    used = int(mask.sum())

    print(f"  pieces ({len(pieces)}): {pieces}")
    print(f"  ids    : {ids[:used].tolist()}  (+{max_length - used} padding)")
    print(f"  mask   : {mask[:used].tolist()}")


def cmd_models(args: argparse.Namespace) -> None:
    """List registry models."""
    print(f"\n{'='*60}")
    print("Pre-configured models")
    print(f"{'='*60}\n")
    for model_id in model_registry.available_models():
        info = model_registry.get_model(model_id)
        print(
            f"  {model_id:24s} dim={info.dimensions:<4d} "
            f"max_len={info.max_sequence_length:<4d} "
            f"pooling={info.pooling_mode.value:<4s}  {info.description}"
        )
    print(f"\n{'='*60}")


def cmd_devices(args: argparse.Namespace) -> None:
    """List available OpenVINO devices."""
    print(f"\n{'='*60}")
    print("OpenVINO Device Discovery")
    print(f"{'='*60}\n")
    summary = DeviceManager().device_summary()
    if summary:
        for entry in summary:
            print(f"  {entry['device']:8s}  {entry['name']}")
    else:
        print("  No devices found.")
    print(f"\n{'='*60}")


def cmd_download(args: argparse.Namespace) -> None:
    """Download a model into the cache without loading it."""
    name = _model_name(args)
    info = model_registry.get_model(name)
    repo_id = info.repo_id if info else name
    subfolder = info.subfolder if info else None
    if info is None and "/" not in name:
        raise LocalEmbedderError(f"Unknown model '{name}'")

    downloader = HuggingFaceDownloader(_options(args).resolved_cache_dir())
    bars = DownloadBars()
    try:
        model_dir = downloader.download_model(repo_id, subfolder=subfolder, progress=bars)
    finally:
        bars.close()
    print(f"  {repo_id} -> {model_dir}")


def cmd_benchmark(args: argparse.Namespace) -> None:
    """Time batch embedding."""
    texts = [f"Benchmark sentence number {i} for throughput." for i in range(args.n_texts)]
    with _load(args) as model:
        stats = model.benchmark(texts, n_runs=args.runs)
    for key, value in stats.items():
        print(f"  {key:14s}: {value:.2f}" if isinstance(value, float) else f"  {key:14s}: {value}")


# ===================================================================
# Argument parser
# ===================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="local-embedder",
        description="Local sentence embeddings on OpenVINO.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="Path to a settings.yaml (default: configs/settings.yaml)",
    )
    parser.add_argument(
        "--model",
        default=None,
        help=f"Registry id, hub repo id, or local model path (default: {DEFAULT_MODEL})",
    )
    parser.add_argument(
        "--device",
        default=None,
        help="OpenVINO device: CPU, GPU, NPU, AUTO, MULTI:CPU,GPU",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -- embed --
    p_embed = subparsers.add_parser("embed", help="Embed one or more texts")
    p_embed.add_argument("texts", nargs="+", help="Texts to embed")
    p_embed.add_argument("--json", action="store_true", help="Print JSON")
    p_embed.add_argument(
        "--preview",
        type=int,
        default=8,
        help="Number of leading values to print (default: 8)",
    )
    p_embed.set_defaults(func=cmd_embed)

    # -- similarity --
    p_sim = subparsers.add_parser("similarity", help="Compare two texts")
    p_sim.add_argument("first", help="First text")
    p_sim.add_argument("second", help="Second text")
    p_sim.set_defaults(func=cmd_similarity)

    # -- tokenize --
    p_tok = subparsers.add_parser("tokenize", help="Show tokenization of a text")
    p_tok.add_argument("text", help="Text to tokenize")
    p_tok.add_argument("--vocab", default=None, help="Path to vocab.txt")
    p_tok.add_argument(
        "--max-length",
        type=int,
        default=None,
        dest="max_length",
        help="Sequence length (default: from settings)",
    )
    p_tok.add_argument(
        "--cased",
        action="store_true",
        help="Do not lowercase (only with --vocab)",
    )
    p_tok.set_defaults(func=cmd_tokenize)

    # -- models --
    p_models = subparsers.add_parser("models", help="List pre-configured models")
    p_models.set_defaults(func=cmd_models)

    # -- devices --
    p_devices = subparsers.add_parser(
        "devices",
        help="List available OpenVINO hardware devices",
    )
    p_devices.set_defaults(func=cmd_devices)

    # -- download --
    p_download = subparsers.add_parser("download", help="Download a model")
    p_download.set_defaults(func=cmd_download)

    # -- benchmark --
    p_bench = subparsers.add_parser("benchmark", help="Time batch embedding")
    p_bench.add_argument("--n-texts", type=int, default=64, dest="n_texts")
    p_bench.add_argument("--runs", type=int, default=5)
    p_bench.set_defaults(func=cmd_benchmark)

    return parser


# ===================================================================
# Main entry point
# ===================================================================

def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=getattr(args, "verbose", False))

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    args.settings_data = load_settings(args.settings)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        sys.exit(130)
    except LocalEmbedderError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
