# site_proximity/utils/pipeline_runner.py
"""
Pipeline runner for the site proximity project.

This module orchestrates the whole workflow from the command line:
- Loads the site snapshot
- Loads or downloads the reference geometry (a named road, or a file)
- Resolves the analysis CRS and reprojects the reference to the sites' CRS
- Runs the proximity pipeline (distances, neighbour stats, tagging)
- Saves the annotated sites and records run statistics

Each step is timed; a failure stops the run and is reported with the step name.
"""

import argparse
import json
import logging
import time
from datetime import datetime
from pathlib import Path

from site_proximity.exceptions import InvalidInputError
from site_proximity.analysis.buffer_tagger import ReferenceGeometry
from site_proximity.analysis.proximity_pipeline import SiteProximityPipeline
from site_proximity.data_acquisition.site_loader import SiteLoader
from site_proximity.data_acquisition.osm_downloader import OSMDownloader
from site_proximity.utils.config_manager import ConfigManager
from site_proximity.utils.file_io import load_path, save_dataframe

logger = logging.getLogger(__name__)

VECTOR_FORMATS = ('.geojson', '.json', '.gpkg', '.shp', '.geoparquet')


def _configure_logging(log_file='pipeline.log'):
    """Console plus file logging, as for every pipeline run."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_file)
        ],
        force=True
    )


class PipelineRunner:
    """Orchestrates the site proximity workflow."""

    def __init__(self, config_path=None, config=None):
        """
        Initialize the pipeline runner.

        Args:
            config_path: Path to configuration file
            config: Ready-made ConfigManager (takes precedence over config_path)
        """
        self.config = config or ConfigManager(config_path)
        # Validate k and friends before touching any data
        self.settings = self.config.proximity_settings()
        self.run_stats = {
            'start_time': None,
            'end_time': None,
            'duration': None,
            'steps_completed': [],
            'errors': []
        }

    def run_pipeline(self, sites_path, reference_file=None, reference_road=None,
                     label=None, output_name=None, file_format='geojson'):
        """
        Run the full workflow.

        Args:
            sites_path: Site snapshot file
            reference_file: Vector file holding the reference geometry
            reference_road: Name of an OSM road to download as the reference
            label: Tag for matching sites (defaults to the road name or file stem)
            output_name: Output file name without extension (None to skip saving)
            file_format: Output format (csv, geojson, parquet, geoparquet)

        Returns:
            Dictionary with pipeline results
        """
        self.run_stats['start_time'] = datetime.now().isoformat()
        self.result = None
        self.current_step = None

        try:
            sites = self._run_step('load_sites', self._load_sites, sites_path)
            reference = self._run_step('load_reference', self._load_reference,
                                       reference_file, reference_road, label)
            pipeline, reference = self._run_step('prepare_pipeline', self._prepare_pipeline,
                                                 sites, reference)

            self.result = self._run_step('proximity', pipeline.run, sites, reference)
            self.run_stats['proximity'] = pipeline.run_stats

            if output_name:
                self._run_step('save_results', save_dataframe, self.result, output_name,
                               self.config.get_path('processed_dir'), file_format)

        except Exception as e:
            error_msg = f"Error in {self.current_step}: {e}"
            logger.error(error_msg)
            self.run_stats['errors'].append(error_msg)

        return self._finish_pipeline()

    def _run_step(self, step, func, *args):
        """
        Run and time a single pipeline step.

        Args:
            step: Step name
            func: Callable doing the work
            *args: Arguments for the callable

        Returns:
            Whatever the step returns
        """
        logger.info(f"Running: {step}")
        start_time = time.time()

        self.current_step = step
        result = func(*args)

        duration = time.time() - start_time
        self.run_stats['steps_completed'].append({
            'step': step,
            'duration': duration,
            'timestamp': datetime.now().isoformat()
        })
        logger.info(f"{step} completed successfully in {duration:.2f} seconds")
        return result

    def _load_sites(self, sites_path):
        loader = SiteLoader(
            id_column=self.config.get('sites.id_column'),
            lon_column=self.config.get('sites.lon_column'),
            lat_column=self.config.get('sites.lat_column'),
            date_column=self.config.get('sites.date_column'),
            source_crs=self.config.get('crs.geographic'),
            analysis_crs=self.config.get('crs.analysis'),
            duplicates=self.config.get('sites.duplicates')
        )
        return loader.load(sites_path)

    def _load_reference(self, reference_file=None, reference_road=None, label=None):
        """Reference geometry from a file or from OSM; None if neither is given."""
        if reference_file and reference_road:
            raise InvalidInputError("Give either a reference file or a reference road, not both")

        if reference_file:
            if Path(reference_file).suffix.lower() not in VECTOR_FORMATS:
                raise InvalidInputError(
                    f"Reference file must be a vector format {VECTOR_FORMATS}, got {reference_file}"
                )
            gdf = load_path(reference_file)
            return ReferenceGeometry.from_geodataframe(gdf, label=label or Path(reference_file).stem)

        if reference_road:
            downloader = OSMDownloader(
                bbox=self.config.get_bbox('egypt'),
                overpass_url=self.config.get('osm.overpass_url'),
                proxy=self.config.get('osm.proxy')
            )
            return downloader.get_reference_road(reference_road, label=label)

        logger.info("No reference given - computing neighbour statistics only")
        return None

    def _prepare_pipeline(self, sites, reference=None):
        """
        Build the proximity pipeline for the loaded sites.

        The sites are already in the analysis CRS, so "utm" resolves to
        whatever zone the loader picked for them.

        Args:
            sites: Projected sites from the load_sites step
            reference: Reference geometry in any CRS, or None

        Returns:
            Tuple of (SiteProximityPipeline, reference reprojected to the sites' CRS)
        """
        settings = dict(self.settings)
        if isinstance(settings['crs'], str) and settings['crs'].lower() == 'utm':
            settings['crs'] = sites.crs

        if reference is not None:
            reference = reference.to_crs(sites.crs)

        return SiteProximityPipeline(**settings), reference

    def _finish_pipeline(self):
        """
        Finish the pipeline and return results.

        Returns:
            Dictionary with pipeline results
        """
        self.run_stats['end_time'] = datetime.now().isoformat()

        start_time = datetime.fromisoformat(self.run_stats['start_time'])
        end_time = datetime.fromisoformat(self.run_stats['end_time'])
        self.run_stats['duration'] = (end_time - start_time).total_seconds()

        self._save_run_stats()

        return {
            'success': len(self.run_stats['errors']) == 0,
            'steps_completed': len(self.run_stats['steps_completed']),
            'errors': len(self.run_stats['errors']),
            'duration': self.run_stats.get('duration'),
            'details': self.run_stats
        }

    def _save_run_stats(self):
        """Save pipeline run statistics, and the configuration they were produced with, to file."""
        try:
            stats_dir = self.config.get_path('processed_dir') / "pipeline_stats"
            stats_dir.mkdir(parents=True, exist_ok=True)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            stats_file = stats_dir / f"pipeline_run_{timestamp}.json"

            with open(stats_file, 'w') as f:
                json.dump(self.run_stats, f, indent=2, default=str)

            self.config.save_config(stats_dir / f"pipeline_config_{timestamp}.yaml")

            logger.info(f"Pipeline stats saved to {stats_file}")

        except OSError as e:
            logger.error(f"Failed to save pipeline stats: {e}")


def main(argv=None):
    """Run the pipeline from command line."""
    parser = argparse.ArgumentParser(description='Tag cellular sites near a road of interest')
    parser.add_argument('--sites', required=True, help='Site snapshot (csv, geojson, parquet)')
    reference = parser.add_mutually_exclusive_group()
    reference.add_argument('--reference-file', help='Vector file with the reference geometry')
    reference.add_argument('--reference-road', help='Name of an OSM road to use as reference')
    parser.add_argument('--label', help='Tag for sites near the reference')
    parser.add_argument('--k', type=int, help='Number of nearest neighbours')
    parser.add_argument('--config', help='Path to configuration file')
    parser.add_argument('--output', default='tagged_sites', help='Output file name (without extension)')
    parser.add_argument('--format', default='geojson', choices=['csv', 'geojson', 'parquet', 'geoparquet'])

    args = parser.parse_args(argv)

    _configure_logging()

    # Initialize and run pipeline
    config = ConfigManager(args.config)
    if args.k is not None:
        config.set('proximity.k', args.k)

    try:
        runner = PipelineRunner(config=config)
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        return 1

    results = runner.run_pipeline(
        args.sites,
        reference_file=args.reference_file,
        reference_road=args.reference_road,
        label=args.label,
        output_name=args.output,
        file_format=args.format
    )

    # Print summary
    print("\nPipeline Run Summary:")
    print(f"Success: {'Yes' if results['success'] else 'No'}")
    print(f"Steps completed: {results['steps_completed']}")
    print(f"Errors: {results['errors']}")
    print(f"Duration: {results['duration']:.2f} seconds" if results['duration'] else "Duration: N/A")

    tag_counts = results['details'].get('proximity', {}).get('tag_counts')
    if tag_counts:
        print("\nTags:")
        for tag, count in tag_counts.items():
            print(f"- {tag}: {count}")

    if results['errors'] > 0:
        print("\nErrors:")
        for error in results['details']['errors']:
            print(f"- {error}")

    return 0 if results['success'] else 1


if __name__ == "__main__":
    exit(main())
