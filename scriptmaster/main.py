"""Entry point for ScriptMaster: web UI by default, headless with --script."""
from __future__ import annotations

import logging
import sys
from pathlib import Path

BACKEND_PORT = 8000


def _setup_logging() -> None:
    log_dir = Path.home() / ".scriptmaster"
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_dir / "scriptmaster.log"),
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_headless(script_path: Path, use_placeholders: bool = False, plan_only: bool = False) -> None:
    """Plan, render and export a script file, printing progress to stdout."""
    from .config import Config
    from .errors import PipelineCancelled, ScriptMasterError
    from .pipeline import Pipeline
    from .schemas import GenerationSettings, PlanRequest

    config = Config.load()

    def progress(msg: str) -> None:
        print(msg)

    try:
        script = script_path.read_text(encoding="utf-8")
    except OSError as e:
        print(f"Error: cannot read {script_path}: {e}")
        sys.exit(1)

    pipeline = Pipeline(config=config, progress_cb=progress, use_placeholders=use_placeholders)
    try:
        pipeline.generate_plan(PlanRequest(script=script), GenerationSettings())
        plan_file = pipeline.save_plan()
        print(f"\n📄 Plan: {plan_file}")
        if plan_only:
            return
        pipeline.start_rendering(GenerationSettings(), background=False)
        state = pipeline.state()
        if state.error:
            print(f"⚠  {state.error}")
        paths = pipeline.download_images()
        print(f"\n✅ {len(paths)} images in {config.output_dir}")
    except PipelineCancelled:
        print("Cancelled.")
        sys.exit(1)
    except ScriptMasterError as e:
        print(f"Error: {e}")
        sys.exit(1)


def main() -> None:
    """Launch ScriptMaster: web backend by default, headless with --script."""
    _setup_logging()

    args = sys.argv[1:]

    # Headless mode: scriptmaster --script story.txt [--test] [--plan-only]
    if "--script" in args:
        idx = args.index("--script")
        if idx + 1 >= len(args):
            print("Usage: --script <file> [--test] [--plan-only]")
            sys.exit(1)
        run_headless(
            Path(args[idx + 1]),
            use_placeholders="--test" in args,
            plan_only="--plan-only" in args,
        )
        return

    import uvicorn

    from .webui.session import session

    session.configure(use_placeholders="--test" in args)
    print(f"► Starting backend on http://localhost:{BACKEND_PORT} …")
    uvicorn.run("scriptmaster.webui.app:app", host="0.0.0.0", port=BACKEND_PORT)


if __name__ == "__main__":
    main()
