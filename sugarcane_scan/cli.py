#!/usr/bin/env python3
"""
Command line interface for Sugarcane Leaf Scan
Run the scan service, validate images locally, or scan and upload an image
"""

import sys
import json
import argparse
import logging

from .config import Config, setup_logging
from .errors import ScanError

logger = logging.getLogger(__name__)


def build_parser(config: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='sugarcane-scan', description='Sugarcane Leaf Scan')
    parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    serve = subparsers.add_parser('serve', help='Run the scan record service')
    serve.add_argument('--host', type=str, default='0.0.0.0')
    serve.add_argument('--port', type=int, default=5000)
    serve.add_argument('--debug', action='store_true')

    validate = subparsers.add_parser('validate', help='Check whether an image shows a sugarcane leaf')
    validate.add_argument('image', type=str, help='Path to image file')
    validate.add_argument('--model', type=str, default=config.LEAF_MODEL_PATH,
                          help='Path to leaf validation model')
    validate.add_argument('--json', action='store_true', help='Print result as JSON')

    quality = subparsers.add_parser('quality', help='Report image quality problems')
    quality.add_argument('image', type=str, help='Path to image file')

    scan = subparsers.add_parser('scan', help='Validate, analyse and upload an image')
    scan.add_argument('image', type=str, help='Path to image file')
    scan.add_argument('--server', type=str, default=config.SERVER_URL, help='Scan service URL')
    scan.add_argument('--model', type=str, default=config.LEAF_MODEL_PATH,
                      help='Path to leaf validation model')
    scan.add_argument('--location', type=str, default='Mobile Device', help='Scan location')
    scan.add_argument('--notes', type=str, default='', help='Notes stored with the scan')
    scan.add_argument('--seed', type=int, default=None, help='Seed for simulated detection')

    history = subparsers.add_parser('history', help='List recent scans')
    history.add_argument('--server', type=str, default=config.SERVER_URL, help='Scan service URL')
    history.add_argument('--limit', type=int, default=None, help='Maximum number of scans')

    train = subparsers.add_parser('train', help='Train the leaf validation model')
    train.add_argument('data_dir', type=str, nargs='?', default=None,
                       help='Directory with leaf/ and non_leaf/ subfolders (synthetic data if omitted)')
    train.add_argument('--output', type=str, default=config.LEAF_MODEL_PATH,
                       help='Where to save the trained model')
    train.add_argument('--model-type', type=str, default='random_forest',
                       choices=['random_forest', 'svm'])
    train.add_argument('--n-estimators', type=int, default=200)
    train.add_argument('--synthetic-samples', type=int, default=100)

    return parser


def cmd_serve(args, config: Config) -> int:
    from .api import create_app

    app = create_app(config)
    app.run(debug=args.debug, host=args.host, port=args.port)
    return 0


def _engine(args, config: Config):
    from .leaf_validator import LeafValidationEngine

    return LeafValidationEngine(
        model_path=args.model,
        load_timeout=config.LEAF_MODEL_LOAD_TIMEOUT,
        retry_interval=config.LEAF_MODEL_RETRY_INTERVAL,
    )


def cmd_validate(args, config: Config) -> int:
    with _engine(args, config) as engine:
        result = engine.validate(args.image)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Is Leaf: {result.is_leaf}")
        print(f"Confidence: {result.confidence:.1%}")
        print(f"Method: {result.method}")
        print(f"Message: {result.message}")
    return 0 if result.is_leaf else 1


def cmd_quality(args, config: Config) -> int:
    from .quality import assess_quality

    report = assess_quality(args.image)
    for suggestion in report.suggestions:
        print(suggestion)
    return 0 if report.acceptable else 1


def cmd_scan(args, config: Config) -> int:
    from .client import ScanClient, ScanWorkflow
    from .detection import SimulatedDiseaseDetector
    from .diseases import DISEASE_INFO

    with _engine(args, config) as engine:
        workflow = ScanWorkflow(
            engine, SimulatedDiseaseDetector(args.seed), ScanClient(args.server),
            scan_location=args.location,
        )
        try:
            outcome = workflow.run(args.image, user_notes=args.notes)
        except ScanError as e:
            logger.error(f"Failed to save scan: {e}")
            print("Failed to save scan. Please try again.")
            return 1

    for suggestion in outcome.quality.suggestions:
        print(f"Quality: {suggestion}")
    print(outcome.validation.message)
    if not outcome.saved:
        return 1

    info = DISEASE_INFO[outcome.detection.disease]
    print(f"Detected: {info.name} ({outcome.detection.confidence:.1%}, severity {info.severity.value})")
    print(f"Treatment: {info.treatment}")
    print(f"Saved as scan {outcome.upload.scan_id} ({outcome.upload.image_key})")
    return 0


def cmd_history(args, config: Config) -> int:
    from .client import ScanClient

    try:
        scans = ScanClient(args.server).list_scans(args.limit)
    except ScanError as e:
        print(f"Failed to fetch scans: {e}")
        return 1

    if not scans:
        print("No scans yet.")
    for scan in scans:
        confidence = scan.get('confidence_score')
        confidence_text = f"{confidence:.1%}" if confidence is not None else "-"
        print(f"#{scan['id']}  {scan['created_at']}  {scan['disease_detected']}  {confidence_text}")
    return 0


def cmd_train(args, config: Config) -> int:
    from .train import LeafModelTrainer

    trainer = LeafModelTrainer(model_type=args.model_type, n_estimators=args.n_estimators)
    try:
        results = trainer.run(args.data_dir, args.output, synthetic_samples=args.synthetic_samples)
    except ScanError as e:
        logger.error(f"Training failed: {e}")
        return 1

    print(f"Accuracy: {results['accuracy']:.3f}")
    print(results['classification_report'])
    print(f"Model saved to: {results['model_path']}")
    return 0


COMMANDS = {
    'serve': cmd_serve,
    'validate': cmd_validate,
    'quality': cmd_quality,
    'scan': cmd_scan,
    'history': cmd_history,
    'train': cmd_train,
}


def main(argv=None) -> int:
    config = Config()
    args = build_parser(config).parse_args(argv)
    setup_logging(config.LOG_LEVEL, config.LOG_FILE, verbose=args.verbose)
    return COMMANDS[args.command](args, config)


if __name__ == '__main__':
    sys.exit(main())
