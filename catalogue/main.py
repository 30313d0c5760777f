from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from . import config
from .models import reset_engine
from .pipeline.ingest import ProductValidationError, ingest_products, load_products_file
from .pipeline.render_pdf import EmptyCatalogueError, GenerationFailure
from .pipeline.run import run_export
from .products import (
    ProductFilter,
    ProductNotFound,
    delete_product,
    get_product,
    list_products,
    update_product,
)

app = typer.Typer(help="Thai Tribal Crafts product catalogue")


@app.callback()
def main(
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory (database + exports)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if out:
        config.set_out_dir(out)
        reset_engine()


def _filters(tribe: Optional[str], category: Optional[str], featured: bool, search: Optional[str]) -> ProductFilter:
    return ProductFilter(tribe=tribe, category=category, featured=featured or None, search=search)


@app.command("import")
def import_products(
    json_path: Path = typer.Option(..., "--json", help="JSON file with a list of products"),
) -> None:
    try:
        products = ingest_products(json_path)
    except ProductValidationError as exc:
        for error in exc.errors:
            typer.echo(f"INVALID: {error}", err=True)
        raise typer.Exit(code=1)
    except (OSError, ValueError) as exc:
        typer.echo(f"Cannot read {json_path}: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Imported {len(products)} products")


@app.command("list")
def list_command(
    tribe: Optional[str] = typer.Option(None, "--tribe"),
    category: Optional[str] = typer.Option(None, "--category"),
    featured: bool = typer.Option(False, "--featured", help="Featured products only"),
    search: Optional[str] = typer.Option(None, "--search"),
) -> None:
    products = list_products(_filters(tribe, category, featured, search))
    if not products:
        typer.echo("No products found")
        return
    for product in products:
        star = "*" if product.featured else " "
        typer.echo(
            f"{star} {product.id}  {product.name}  [{product.tribe} / {product.category}]  "
            f"{product.price_currency} {product.price_amount:,.2f}  stock={product.stock_quantity}"
        )


@app.command()
def show(product_id: str) -> None:
    try:
        product = get_product(product_id)
    except ProductNotFound as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(product.model_dump(mode="json"), indent=2, ensure_ascii=False))


@app.command()
def update(
    product_id: str,
    json_path: Path = typer.Option(..., "--json", help="JSON object with the fields to change"),
) -> None:
    try:
        changes = load_products_file(json_path)[0]
    except (OSError, ValueError) as exc:
        typer.echo(f"Cannot read {json_path}: {exc}", err=True)
        raise typer.Exit(code=1)
    try:
        product = update_product(product_id, changes)
    except ProductNotFound as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    except ProductValidationError as exc:
        for error in exc.errors:
            typer.echo(f"INVALID: {error}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Updated {product.id}")


@app.command()
def delete(product_id: str) -> None:
    try:
        delete_product(product_id)
    except ProductNotFound as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted {product_id}")


@app.command()
def export(
    ids: Optional[List[str]] = typer.Option(None, "--id", help="Product id to include (repeatable)"),
    tribe: Optional[str] = typer.Option(None, "--tribe"),
    category: Optional[str] = typer.Option(None, "--category"),
    featured: bool = typer.Option(False, "--featured", help="Featured products only"),
    search: Optional[str] = typer.Option(None, "--search"),
    previews: bool = typer.Option(True, "--previews/--no-previews", help="Render PNG previews"),
) -> None:
    try:
        result = run_export(
            product_ids=ids or None,
            filters=_filters(tribe, category, featured, search),
            previews=previews,
        )
    except EmptyCatalogueError:
        typer.echo("No products to catalogue")
        raise typer.Exit(code=1)
    except GenerationFailure as exc:
        typer.echo(f"FAILED: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"PAGES: {result.page_count}")
    typer.echo(f"PRODUCTS: {result.product_count}")
    typer.echo(f"PDF: {result.pdf_path}")
    for preview in result.previews:
        typer.echo(f"PREVIEW: {preview}")


if __name__ == "__main__":
    app()
